"""Health checkers for proxied backends: scripted TCP, MySQL and Redis."""