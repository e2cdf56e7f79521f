"""errors.py — Exception taxonomy for the viewer core and its collaborators."""


class ViewerError(Exception):
    """Base class for every error raised by this package."""


class FileReadError(ViewerError):
    """Raw byte access to a source file failed."""


class MetadataParseError(ViewerError):
    """The metadata extractor rejected the content of a file."""


# Name used by the extractor contract.
ParseError = MetadataParseError


class EmptyInputError(ViewerError):
    """A study was requested from zero instance records."""


class SurfaceNotReadyError(ViewerError):
    """A rendering call was made before a surface was created."""


class ToolBindError(ViewerError):
    """The rendering adapter does not know the requested tool."""


class PixelLoadError(ViewerError):
    """The rendering adapter could not resolve a pixel-data reference."""
