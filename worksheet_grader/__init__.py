"""Grading pipeline for photographed handwritten math worksheets.

This package exposes the normalization, request, parsing and geometry
routines used by the HTTP functions and the local grading script.
"""

from .coordinates import BoxGeometry, check_bounding_box, to_percentages, to_pixel_box  # noqa: F401
from .errors import (  # noqa: F401
    DecodeError,
    GeometryError,
    GradingError,
    InferenceError,
    InputError,
    ParseError,
    SubmissionSuperseded,
)
from .grading_types import (  # noqa: F401
    GradedWorksheet,
    GradingRequest,
    GradingSettings,
    NormalizedImage,
    RawImage,
)
from .image_normalizer import (  # noqa: F401
    compute_target_size,
    decode_data_url,
    normalize_image,
    normalize_image_bytes,
)
from .overlay import render_overlay  # noqa: F401
from .pipeline import GradingPipeline, SubmissionTracker  # noqa: F401
from .request_builder import (  # noqa: F401
    GradingClient,
    build_grading_request,
    create_genai_client,
)
from .response_parser import parse_grading_response, strip_code_fences, summarize  # noqa: F401
from .schema import GradingResponse, GradingResult  # noqa: F401
