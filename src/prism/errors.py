class AdapterError(Exception):
    """
    AdapterError is the base for every failure a provider adapter
    reports to its caller. status_code is the HTTP status the proxy
    route answers with.
    """

    status_code: "int" = 500

    def __init__(self, message: "str", status_code: "int | None" = None) -> "None":
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class CredentialError(AdapterError):
    """
    missing or malformed credential input. Correctable by the user.
    """

    status_code = 400


class UpstreamError(AdapterError):
    """
    the provider answered with a non-2xx status. status_code mirrors
    the provider's status.
    """


class NetworkError(AdapterError):
    """
    the call could not be completed at all (DNS, timeout, transport
    or token exchange failure).
    """

    status_code = 500
