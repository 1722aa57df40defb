"""Exception hierarchy for fatal search, fetch and mosaic errors."""

import logging

logger = logging.getLogger(__name__)


class LinzS3FilterError(Exception):
    """Base error; ``code`` gives a stable machine-readable identifier."""

    code = "linz_s3_filter_error"

    def format_chain(self) -> str:
        """Format the error and its causes into a readable string.

        :returns: Message followed by one ``Caused by:`` line per chained cause
        """
        lines = [str(self)]
        err: BaseException | None = self.__cause__ or self.__context__
        while err is not None:
            lines.append(f"Caused by: {err}")
            err = err.__cause__ or err.__context__
        return "\n".join(lines)

    def report(self) -> None:
        logger.error(f"Error: {self.format_chain()}")


class NoFilterProvidedError(LinzS3FilterError):
    code = "no_filter_provided"

    def __init__(self) -> None:
        super().__init__(
            "Neither spatial filter nor collection name filter were provided. "
            "This would search the whole bucket; pass a filter or select all collections explicitly."
        )


class DimensionAndCoordinateRangeError(LinzS3FilterError):
    code = "dimension_and_coordinate_range"

    def __init__(self) -> None:
        super().__init__(
            "Cannot specify both dimensions (width_m, height_m) and a coordinate range. Please choose one."
        )


class CatalogFetchError(LinzS3FilterError):
    code = "catalog_fetch_error"

    def __init__(self, url: str) -> None:
        super().__init__(f"Failed to fetch catalog from {url}")
        self.url = url


class InvalidSelectionError(LinzS3FilterError):
    code = "invalid_selection"


class MosaicError(LinzS3FilterError):
    code = "mosaic_error"
