def INFO_PEER_REGISTERED(peer_id: str, total_peers: int) -> str:
    msg = f"Peer registered | ID: '{peer_id}' | Total peers: {total_peers}"
    return msg

def INFO_PEER_DISCONNECTED(peer_id: str, remaining_peers: int) -> str:
    msg = f"Peer disconnected | ID: '{peer_id}' | Remaining peers: {remaining_peers}"
    return msg

def INFO_CONTROLLER_ACQUIRED(controller_id: str, takeover_from: str | None) -> str:
    if takeover_from:
        msg = f"Controller takeover | '{takeover_from}' -> '{controller_id}'"
    else:
        msg = f"Controller lock acquired | Owner: '{controller_id}'"
    return msg

def INFO_CONTROLLER_RELEASED(controller_id: str | None, forced: bool) -> str:
    msg = f"Controller lock released | Previous owner: '{controller_id}' | Forced: {forced}"
    return msg

def INFO_SIGNAL_DELIVERED(message_type: str, source_id: str, target_id: str) -> str:
    msg = f"Signal delivered directly | Type: {message_type} | From: '{source_id}' | To: '{target_id}'"
    return msg

def INFO_SIGNAL_QUEUED(message_type: str, source_id: str, target_id: str) -> str:
    msg = f"Target not connected, signal queued | Type: {message_type} | From: '{source_id}' | To: '{target_id}'"
    return msg

def INFO_QUEUE_DRAINED(recipient_id: str, delivered: int, failed: int) -> str:
    msg = f"Queued messages drained | Recipient: '{recipient_id}' | Delivered: {delivered} | Failed: {failed}"
    return msg

def INFO_CONTROLLER_KICK_SENT(kicked_id: str, new_controller_id: str, queued: bool) -> str:
    msg = f"Controller kick notification {'queued' if queued else 'sent'} | Kicked: '{kicked_id}' | New controller: '{new_controller_id}'"
    return msg
