class ResolverError(RuntimeError):
    pass


class InvalidIsbnError(ResolverError):
    """The input is not a syntactically valid ISBN."""


class BookNotFoundError(ResolverError):
    """The upstream service answered and does not know the ISBN."""


class UpstreamError(ResolverError):
    """Timeout, network failure or unusable response from the upstream service."""


class ConfigurationError(ResolverError):
    pass
