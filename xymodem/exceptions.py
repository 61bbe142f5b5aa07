"""
Exception classes for xymodem.
"""

class ModemException(Exception):
    """Base exception class for xymodem."""
    def __init__(self, message):
        super().__init__(message)


class FatalTransmissionException(ModemException):
    """Exception raised when the transfer cannot continue, e.g. block synchronization was lost."""
    def __init__(self, reason):
        super().__init__(f'Fatal transmission error: {reason}')


class MaxErrorsExceededException(ModemException):
    """Exception raised when the consecutive error count reaches the configured maximum."""
    def __init__(self, max_errors):
        self.max_errors = max_errors
        super().__init__(f'Transmission aborted, error count exceeded max ({max_errors})')


class PeerCancelledException(ModemException):
    """Exception raised when the other side cancels the transmission."""
    def __init__(self):
        super().__init__('Transmission cancelled by the peer')


class TransferCancelledException(ModemException):
    """Exception raised when the caller cancels a transmission in progress."""
    def __init__(self):
        super().__init__('Transmission cancelled')


class InvalidFilenameException(ModemException):
    """Exception raised when a filename cannot be carried in a YMODEM header block."""
    def __init__(self, filename):
        self.filename = filename
        super().__init__(f'Filename \'{filename}\' must be in DOS style (no spaces, max 8.3)')


class HandshakeFailedException(ModemException):
    """Exception raised when the receiver never requests the transfer."""
    def __init__(self):
        super().__init__('Timeout waiting for the receiver to start the transmission')
