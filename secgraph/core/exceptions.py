class GraphGenerationError(Exception):
    """Base class for graph generation failures."""


class UpstreamUnavailableError(GraphGenerationError):
    """The generation capability or the persistent graph store could not be reached."""


class MalformedGenerationOutputError(GraphGenerationError, ValueError):
    """Generation output could not be parsed into the expected shape."""


class StructuralInputError(GraphGenerationError, TypeError):
    """A caller passed a structurally invalid value, e.g. a non-list entity category."""
