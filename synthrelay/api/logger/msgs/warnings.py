def MALFORMED_SIGNAL_MESSAGE(peer_id: str | None, raw: str, reason: str) -> str:
    preview = raw[:100] + "..." if len(raw) > 100 else raw
    msg = f"Dropped malformed control message | Peer: '{peer_id}' | Reason: {reason} | Data: {preview}"
    return msg

def UNREGISTERED_PEER_MESSAGE(message_type: str) -> str:
    msg = f"Dropped '{message_type}' message from a socket that has not registered yet"
    return msg

def MISSING_SIGNAL_TARGET(message_type: str, source_id: str) -> str:
    msg = f"Dropped '{message_type}' message without a target | From: '{source_id}'"
    return msg

def UNKNOWN_SIGNAL_TYPE(message_type: str, peer_id: str | None) -> str:
    msg = f"Unknown control message type '{message_type}' | Peer: '{peer_id}'"
    return msg

def CONTROLLER_CONFLICT(requested_by: str, current_owner: str) -> str:
    msg = f"Controller lock held by another owner | Requested by: '{requested_by}' | Current owner: '{current_owner}'"
    return msg

def CONTROLLER_RELEASE_REJECTED(requested_by: str, current_owner: str | None) -> str:
    msg = f"Controller release rejected | Requested by: '{requested_by}' | Current owner: '{current_owner}'"
    return msg

def QUEUED_MESSAGE_SEND_FAILED(recipient_id: str, message_id: str, error: Exception) -> str:
    msg = f"Queued message send failed, entry dropped | Recipient: '{recipient_id}' | Message: '{message_id}' | Error: {str(error)}"
    return msg
