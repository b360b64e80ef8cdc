"""Exceptions raised by the top holders sync."""


class TopHoldersError(Exception):
    """Base class for all sync errors."""


class ConfigurationError(TopHoldersError):
    """Missing or invalid configuration, e.g. no RPC URL for a chain."""


class FeatureDisabledError(ConfigurationError):
    def __init__(self, name):
        super().__init__(f"Feature {name} disabled")
        self.name = name


class NotFoundError(TopHoldersError):
    """Pool is unknown or has no contract address."""


class UpstreamError(TopHoldersError):
    """HTTP or JSON-RPC failure from the chain endpoint."""


class WindowContiguityError(TopHoldersError):
    """An incremental window does not start right after the stored one."""

    def __init__(self, expected, actual):
        super().__init__(f"Incremental sync must start at block {expected}, got {actual}")
        self.expected = expected
        self.actual = actual


class SyncInProgressError(TopHoldersError):
    def __init__(self, chain, pool_id):
        super().__init__(f"Top holders sync already running for {chain}/{pool_id}")
        self.chain = chain
        self.pool_id = pool_id


class SyncTimeoutError(TopHoldersError):
    def __init__(self, pool_id, timeout):
        super().__init__(f"Top holders sync for pool {pool_id} exceeded {timeout}s")
        self.pool_id = pool_id
        self.timeout = timeout
