LOG_LEVEL_MAP = {
    0: "INFO",
    1: "DEBUG",
    2: "ERROR",
    3: "CRITICAL",
}
