def ERROR_NO_CONFIG_FILE_FOUND(config_file_path: str) -> str:
    """ERROR NO CONFIG FILE FOUND."""
    msg = f"No configuration file was found at '{config_file_path}', running with environment and default values. Run 'synthrelay setup' to create one."

    return msg

def ERROR_QUEUE_STORE_UNAVAILABLE(operation: str, error: Exception) -> str:
    msg = f"Queue store unavailable | Operation: {operation} | Error: {str(error)}"

    return msg
