"""
Liftbridge CLI exceptions
"""


class LiftbridgeError(Exception):
    """Base exception for all Liftbridge CLI errors"""
    pass


class ConnectionFailed(LiftbridgeError):
    """Could not open a session to the broker"""

    def __init__(self, address: str, cause: Exception):
        super().__init__(f"connection failed with address {address}: {cause}")
        self.address = address
        self.cause = cause


class StreamCreationFailed(LiftbridgeError):
    """Stream creation failed for a reason other than the stream existing"""

    def __init__(self, stream: str, cause: Exception):
        super().__init__(f"stream creation failed for stream {stream}: {cause}")
        self.stream = stream
        self.cause = cause


class InvalidAckPolicy(LiftbridgeError):
    """Unknown ack policy token"""

    def __init__(self, token: str):
        super().__init__(f"invalid ack policy: {token}")
        self.token = token


class SubscriptionFailed(LiftbridgeError):
    """Subscription could not be established"""

    def __init__(self, stream: str, cause: Exception):
        super().__init__(f"could not subscribe to stream {stream}: {cause}")
        self.stream = stream
        self.cause = cause


class DeliveryError(LiftbridgeError):
    """Terminal error reported by an active subscription"""

    def __init__(self, stream: str, cause: Exception):
        super().__init__(f"delivery failed for stream {stream}: {cause}")
        self.stream = stream
        self.cause = cause


class DecodeError(LiftbridgeError):
    """Malformed activity stream payload"""
    pass


class BrokerTimeout(LiftbridgeError):
    """Broker did not answer within the request deadline"""

    def __init__(self, timeout: float):
        super().__init__(f"no response from broker within {timeout}s")
        self.timeout = timeout


class CommandError(LiftbridgeError):
    """A command failed; carries the command prefix and the first error"""

    def __init__(self, prefix: str, cause: Exception):
        super().__init__(f"{prefix}: {cause}")
        self.prefix = prefix
        self.cause = cause


class MetadataFetchFailed(CommandError):
    """Error fetching cluster or partition metadata"""
    pass


class CursorOperationFailed(CommandError):
    """Error setting or fetching a cursor"""
    pass
