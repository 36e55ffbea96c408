"""End-to-end conversion: raw capture -> normalized IR -> template -> schema gate."""

from pagekit.asset_matcher import AssetUrlMap
from pagekit.converter import convert_capture
from pagekit.heuristics import DEFAULT_HEURISTICS, Heuristics
from pagekit.ir_normalizer import normalize_capture
from pagekit.validator import ensure_valid


def convert_page(raw_capture, asset_map: AssetUrlMap | None = None,
                 heuristics: Heuristics = DEFAULT_HEURISTICS) -> dict:
    """
    Returns the validated, enhanced template.

    Raises ScrapeInputError for an unusable capture and SchemaValidationError
    (carrying the violation list) when the generated template breaks the
    output contract.
    """
    capture = normalize_capture(raw_capture)
    template = convert_capture(capture, asset_map=asset_map, heuristics=heuristics)
    return ensure_valid(template)
