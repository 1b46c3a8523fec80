# fieldops_app/api/exceptions.py
#
#
#######################################################################################################################
#
# Functions:

class FieldOpsAPIError(Exception):
    """Base exception for fieldops_app.api errors."""
    pass

class APIConnectionError(FieldOpsAPIError):
    """Raised for network or connection issues, including timeouts."""
    pass

class APIRequestError(FieldOpsAPIError):
    """Raised for errors in constructing or sending the request (e.g., bad data)."""
    def __init__(self, message: str, response_data: dict = None):
        super().__init__(message)
        self.response_data = response_data or {}

class APIResponseError(FieldOpsAPIError):
    """Raised for non-2xx responses or issues parsing the response."""
    def __init__(self, status_code: int, message: str, response_data: dict = None):
        super().__init__(f"API Error {status_code}: {message}")
        self.status_code = status_code
        self.response_data = response_data or {}

class AuthenticationError(FieldOpsAPIError):
    """Raised for authentication failures."""
    pass

class ServerStatusError(FieldOpsAPIError):
    """Raised when a well-formed envelope carries a status other than 1."""
    def __init__(self, status: int, message: str, response_data: dict = None):
        super().__init__(f"Server rejected request (status {status}): {message}")
        self.status = status
        self.response_data = response_data or {}

#
# End of fieldops_app/api/exceptions.py
########################################################################################################################
