"""Exception taxonomy shared by the graph compiler, nodes and entrypoints.

Only ConfigurationError (graph compile time) and DocumentLoadError (before a
run starts) are meant to cross an entrypoint. Everything else is caught at the
node boundary and stored in the pipeline state's error_message.
"""


class CFlowError(Exception):
    """Base class for all ContentFlow errors."""


class ConfigurationError(CFlowError):
    """A workflow graph is malformed. Raised by WorkflowGraph.compile()."""


class ExternalCapabilityError(CFlowError):
    """An external capability (LLM, loader, storage) failed."""


class LLMError(ExternalCapabilityError):
    """Base class for LLM invocation failures."""


class LLMTimeoutError(LLMError):
    pass


class LLMRateLimitedError(LLMError):
    pass


class LLMInvalidResponseError(LLMError):
    pass


class LLMAuthError(LLMError):
    pass


class DocumentLoadError(ExternalCapabilityError):
    """Text extraction failed; the pipeline does not start."""


class DocumentNotFoundError(DocumentLoadError):
    pass


class UnsupportedFormatError(DocumentLoadError):
    pass


class StorageError(ExternalCapabilityError):
    """The artifact store could not persist a record."""


class ParseError(CFlowError):
    """Model output violates a node's output contract."""


class RecordStateError(CFlowError):
    """An execution record was finalized twice."""
