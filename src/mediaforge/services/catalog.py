"""Model catalog: routing, validation and request building per model.

Every supported model identifier maps to one ModelSpec. The spec names the
provider adapter that handles it, the provider endpoint, the default credit
cost, and the two model-family functions used by the dispatcher:

- ``validate(prompt, reference_inputs, parameters)`` raises InvalidParameters
  before any credit is reserved
- ``build_request(request)`` produces the provider payload at submit time

Models absent from MODEL_CATALOG are rejected with UnsupportedModel.
"""

from collections.abc import Callable
from dataclasses import dataclass

from mediaforge.models.generation_job import JobKind
from mediaforge.services.exceptions import InvalidParameters, UnsupportedModel
from mediaforge.services.providers.base import SubmitRequest

KIE = "kie"
REPLICATE = "replicate"

MAX_PROMPT_LENGTH = 5000
MAX_REFERENCE_INPUTS = 10

VEO_ASPECT_RATIOS = ("16:9", "9:16")
VEO_TEXT_TO_VIDEO = "TEXT_2_VIDEO"
VEO_FIRST_AND_LAST_FRAMES = "FIRST_AND_LAST_FRAMES_2_VIDEO"
VEO_REFERENCE = "REFERENCE_2_VIDEO"

Validator = Callable[[str, list[str], dict], None]
Builder = Callable[["ModelSpec", SubmitRequest], dict]


@dataclass(frozen=True)
class ModelSpec:
    """Routing entry for one model identifier.

    Attributes:
        name: Public model identifier (lower-case)
        kind: Kind of media the model produces
        provider: Adapter name ("kie" or "replicate")
        endpoint: Provider endpoint path, or model reference for replicate
        default_cost: Credit cost used when the price table has no row
        provider_model: Model name sent to the provider, if it differs
        description: Human-readable description seeded into the price table
    """

    name: str
    kind: JobKind
    provider: str
    endpoint: str
    default_cost: int
    builder: Builder
    validator: Validator | None = None
    provider_model: str | None = None
    description: str = ""
    requires_prompt: bool = True

    def validate(self, prompt: str, reference_inputs: list[str], parameters: dict) -> None:
        """Reject a model/parameter combination the provider cannot serve.

        Raises:
            InvalidParameters: With a message safe to return to the user
        """
        if self.requires_prompt and not (prompt or "").strip():
            raise InvalidParameters("Prompt cannot be empty")
        if prompt and len(prompt) > MAX_PROMPT_LENGTH:
            raise InvalidParameters(
                f"Prompt exceeds maximum length of {MAX_PROMPT_LENGTH} characters "
                f"(got {len(prompt)})"
            )
        if len(reference_inputs) > MAX_REFERENCE_INPUTS:
            raise InvalidParameters(
                f"At most {MAX_REFERENCE_INPUTS} reference inputs are supported "
                f"(got {len(reference_inputs)})"
            )
        for url in reference_inputs:
            if not isinstance(url, str) or not url.startswith(("http://", "https://")):
                raise InvalidParameters(f"Reference input must be an http(s) URL: {url!r}")
        if self.validator is not None:
            self.validator(prompt, reference_inputs, parameters)

    def build_request(self, request: SubmitRequest) -> dict:
        """Build the provider payload, dropping unset optional fields."""
        payload = self.builder(self, request)
        return {key: value for key, value in payload.items() if value is not None}


# ---------------------------------------------------------------------------
# Validators


def _veo_generation_type(model: str, reference_inputs: list[str], parameters: dict) -> str:
    """Pick the Veo generation type for the given images.

    An explicit ``veoSubtype`` parameter is honoured and its image count
    checked. Otherwise the type follows from the number of reference images:
    reference-to-video only works on veo-3.1-fast in 16:9.
    """
    aspect_ratio = parameters.get("aspectRatio", "16:9")
    is_fast = model == "veo-3.1-fast"
    count = len(reference_inputs)

    subtype = parameters.get("veoSubtype")
    if subtype:
        if subtype == VEO_FIRST_AND_LAST_FRAMES and count != 2:
            raise InvalidParameters(
                f"{VEO_FIRST_AND_LAST_FRAMES} requires exactly 2 reference images"
            )
        if subtype == VEO_REFERENCE and not 1 <= count <= 3:
            raise InvalidParameters(f"{VEO_REFERENCE} requires 1 to 3 reference images")
        if subtype not in (VEO_TEXT_TO_VIDEO, VEO_FIRST_AND_LAST_FRAMES, VEO_REFERENCE):
            raise InvalidParameters(f"Unknown Veo generation type: {subtype}")
        return subtype

    if count == 0:
        return VEO_TEXT_TO_VIDEO
    if count == 1:
        if is_fast and aspect_ratio == "16:9":
            return VEO_REFERENCE
        return VEO_FIRST_AND_LAST_FRAMES
    if count == 2:
        return VEO_FIRST_AND_LAST_FRAMES
    if count == 3:
        if is_fast and aspect_ratio == "16:9":
            return VEO_REFERENCE
        raise InvalidParameters(
            "Multi-reference (3 images) only supported with Veo 3.1 Fast model "
            "and 16:9 aspect ratio"
        )
    raise InvalidParameters(f"Invalid image count: {count}. Supported: 1-3 images")


def _veo_validator(model: str) -> Validator:
    def validate(prompt: str, reference_inputs: list[str], parameters: dict) -> None:
        aspect_ratio = parameters.get("aspectRatio", "16:9")
        if aspect_ratio not in VEO_ASPECT_RATIOS:
            raise InvalidParameters(
                f"Veo models only support 16:9 and 9:16 aspect ratios. Received: {aspect_ratio}"
            )
        _veo_generation_type(model, reference_inputs, parameters)

    return validate


def _choice(name: str, allowed: tuple) -> Validator:
    def validate(prompt: str, reference_inputs: list[str], parameters: dict) -> None:
        value = parameters.get(name)
        if value is not None and value not in allowed:
            raise InvalidParameters(
                f"Unsupported {name}: {value}. Allowed: {', '.join(str(a) for a in allowed)}"
            )

    return validate


def _all_of(*validators: Validator) -> Validator:
    def validate(prompt: str, reference_inputs: list[str], parameters: dict) -> None:
        for validator in validators:
            validator(prompt, reference_inputs, parameters)

    return validate


def _single_reference(prompt: str, reference_inputs: list[str], parameters: dict) -> None:
    if len(reference_inputs) > 1:
        raise InvalidParameters("This model accepts a single reference image")


def _requires_source(prompt: str, reference_inputs: list[str], parameters: dict) -> None:
    if not reference_inputs:
        raise InvalidParameters("A source URL is required in reference_inputs")


def _image_count(name: str, low: int, high: int) -> Validator:
    def validate(prompt: str, reference_inputs: list[str], parameters: dict) -> None:
        value = parameters.get(name)
        if value is None:
            return
        if not isinstance(value, int) or isinstance(value, bool) or not low <= value <= high:
            raise InvalidParameters(f"{name} must be an integer between {low} and {high}")

    return validate


# ---------------------------------------------------------------------------
# Request builders


def _veo_request(spec: ModelSpec, request: SubmitRequest) -> dict:
    params = request.parameters
    return {
        "prompt": request.prompt,
        "model": spec.provider_model,
        "generationType": _veo_generation_type(spec.name, request.reference_inputs, params),
        "imageUrls": request.reference_inputs or None,
        "aspectRatio": params.get("aspectRatio", "16:9"),
        "seeds": params.get("seeds"),
        "watermark": params.get("watermark"),
        "enableTranslation": True,
        "callBackUrl": request.callback_url,
    }


def _runway_request(spec: ModelSpec, request: SubmitRequest) -> dict:
    params = request.parameters
    return {
        "prompt": request.prompt,
        "model": spec.provider_model,
        "imageUrl": request.reference_inputs[0] if request.reference_inputs else None,
        "duration": params.get("duration", 5),
        "quality": params.get("quality", "720p"),
        "aspectRatio": params.get("aspectRatio", "16:9"),
        "waterMark": params.get("watermark", ""),
        "callBackUrl": request.callback_url,
    }


def _seedance_request(spec: ModelSpec, request: SubmitRequest) -> dict:
    params = request.parameters
    return {
        "prompt": request.prompt,
        "model": spec.provider_model,
        "image_url": request.reference_inputs[0] if request.reference_inputs else None,
        "end_image_url": params.get("endImageUrl"),
        "resolution": params.get("resolution", "720p"),
        "duration": params.get("duration", 5),
        "camera_fixed": params.get("cameraFixed", False),
        "seed": params.get("seed", -1),
        "callBackUrl": request.callback_url,
    }


def _wan_request(spec: ModelSpec, request: SubmitRequest) -> dict:
    params = request.parameters
    image_to_video = bool(request.reference_inputs)
    return {
        "model": "wan2.5-i2v-preview" if image_to_video else "wan2.5-t2v-preview",
        "prompt": request.prompt,
        "negative_prompt": params.get("negativePrompt"),
        "resolution": params.get("resolution", "720p"),
        "aspect_ratio": params.get("aspectRatio", "16:9"),
        "duration": params.get("duration", 5),
        "seed": params.get("seed"),
        "image_url": request.reference_inputs[0] if image_to_video else None,
        "audio_url": params.get("audioUrl"),
        "enable_audio": True if params.get("enableAudio") and not params.get("audioUrl") else None,
        "callBackUrl": request.callback_url,
    }


def _kling_request(spec: ModelSpec, request: SubmitRequest) -> dict:
    params = request.parameters
    return {
        "model": spec.provider_model,
        "prompt": request.prompt,
        "aspectRatio": params.get("aspectRatio", "16:9"),
        "duration": params.get("duration", 5),
        "mode": params.get("mode", "standard"),
        "negative_prompt": params.get("negativePrompt"),
        "image_url": request.reference_inputs[0] if request.reference_inputs else None,
        "callBackUrl": request.callback_url,
    }


def _gpt4o_image_request(spec: ModelSpec, request: SubmitRequest) -> dict:
    params = request.parameters
    return {
        "prompt": request.prompt,
        "size": params.get("aspectRatio", "1:1"),
        "nVariants": params.get("nVariants", 1),
        "isEnhance": params.get("isEnhance", False),
        "filesUrl": request.reference_inputs or None,
        "outputFormat": params.get("outputFormat"),
        "quality": params.get("quality"),
        "callBackUrl": request.callback_url,
    }


def _seedream_request(spec: ModelSpec, request: SubmitRequest) -> dict:
    params = request.parameters
    resolution = params.get("imageResolution", "2K")
    custom = resolution == "custom"
    return {
        "model": spec.provider_model,
        "prompt": request.prompt,
        "image_resolution": resolution,
        "image_size": params.get("imageSize", "square"),
        "max_images": params.get("maxImages", 1),
        "seed": params.get("seed"),
        "watermark": params.get("watermark", False),
        "response_format": "url",
        "image_input": request.reference_inputs[:10] or None,
        "width": params.get("width") if custom else None,
        "height": params.get("height") if custom else None,
        "callBackUrl": request.callback_url,
    }


def _midjourney_request(spec: ModelSpec, request: SubmitRequest) -> dict:
    params = request.parameters
    img2img = bool(request.reference_inputs)
    return {
        "taskType": "mj_img2img" if img2img else "mj_txt2img",
        "prompt": request.prompt,
        "version": params.get("version", "7"),
        "speed": params.get("speed", "Fast"),
        "aspectRatio": params.get("aspectRatio", "1:1"),
        "stylization": params.get("stylization", 100),
        "weirdness": params.get("weirdness", 0),
        "waterMark": params.get("watermark", ""),
        "fileUrl": request.reference_inputs[0] if img2img else None,
        "callBackUrl": request.callback_url,
    }


def _suno_request(spec: ModelSpec, request: SubmitRequest) -> dict:
    params = request.parameters
    return {
        "prompt": request.prompt,
        "model": spec.provider_model,
        "customMode": params.get("customMode", False),
        "instrumental": params.get("instrumental", False),
        "style": params.get("style"),
        "title": params.get("title"),
        "negativeTags": params.get("negativeTags"),
        "callBackUrl": request.callback_url,
    }


def _tts_request(spec: ModelSpec, request: SubmitRequest) -> dict:
    params = request.parameters
    return {
        "text": request.prompt,
        "voice": params.get("voiceId", "Rachel"),
        "stability": params.get("stability"),
        "similarity_boost": params.get("similarityBoost"),
        "style": params.get("style"),
        "speed": params.get("speed"),
        "language_code": params.get("languageCode"),
        "callBackUrl": request.callback_url,
    }


def _sound_effect_request(spec: ModelSpec, request: SubmitRequest) -> dict:
    params = request.parameters
    effect_input = {
        "text": request.prompt,
        "duration_seconds": params.get("durationSeconds"),
        "prompt_influence": params.get("promptInfluence"),
        "output_format": params.get("outputFormat"),
    }
    return {
        "model": spec.provider_model,
        "callBackUrl": request.callback_url,
        "input": {key: value for key, value in effect_input.items() if value is not None},
    }


def _wav_request(spec: ModelSpec, request: SubmitRequest) -> dict:
    return {
        "audio_url": request.reference_inputs[0],
        "callBackUrl": request.callback_url,
    }


def _vocal_removal_request(spec: ModelSpec, request: SubmitRequest) -> dict:
    return {
        "audio_url": request.reference_inputs[0],
        "type": request.parameters.get("separationType", "separate_vocal"),
        "callBackUrl": request.callback_url,
    }


def _replicate_image_request(spec: ModelSpec, request: SubmitRequest) -> dict:
    params = request.parameters
    return {
        "prompt": request.prompt,
        "aspect_ratio": params.get("aspectRatio"),
        "num_outputs": params.get("numOutputs"),
        "seed": params.get("seed"),
    }


# ---------------------------------------------------------------------------
# Catalog


def _specs() -> list[ModelSpec]:
    video, image, music = JobKind.VIDEO, JobKind.IMAGE, JobKind.MUSIC
    resolutions = ("480p", "720p", "1080p")
    variants = _choice("nVariants", (1, 2, 4))
    return [
        # Video (Kie.ai)
        ModelSpec(
            name="veo-3.1",
            kind=video,
            provider=KIE,
            endpoint="/api/v1/veo/generate",
            default_cost=525,
            builder=_veo_request,
            validator=_veo_validator("veo-3.1"),
            provider_model="veo3",
            description="Google Veo 3.1 Quality - HD quality with synchronized audio (8s)",
        ),
        ModelSpec(
            name="veo-3.1-fast",
            kind=video,
            provider=KIE,
            endpoint="/api/v1/veo/generate",
            default_cost=125,
            builder=_veo_request,
            validator=_veo_validator("veo-3.1-fast"),
            provider_model="veo3_fast",
            description="Google Veo 3.1 Fast - Faster generation, great quality (8s)",
        ),
        ModelSpec(
            name="veo-3",
            kind=video,
            provider=KIE,
            endpoint="/api/v1/veo/generate",
            default_cost=525,
            builder=_veo_request,
            validator=_veo_validator("veo-3"),
            provider_model="veo3",
            description="Google Veo 3 (8s)",
        ),
        ModelSpec(
            name="runway-gen3-alpha-turbo",
            kind=video,
            provider=KIE,
            endpoint="/api/v1/runway/generate",
            default_cost=30,
            builder=_runway_request,
            validator=_all_of(_single_reference, _choice("duration", (5, 10))),
            provider_model="GEN3_ALPHA_TURBO",
            description="Runway Gen-3 - HD quality video generation",
        ),
        ModelSpec(
            name="runway-aleph",
            kind=video,
            provider=KIE,
            endpoint="/api/v1/runway/generate",
            default_cost=80,
            builder=_runway_request,
            validator=_single_reference,
            provider_model="ALEPH",
            description="Runway Aleph",
        ),
        ModelSpec(
            name="seedance-1-pro",
            kind=video,
            provider=KIE,
            endpoint="/api/v1/seedance/generate",
            default_cost=75,
            builder=_seedance_request,
            validator=_choice("resolution", resolutions),
            provider_model="seedance-1-pro",
            description="Seedance 1.0 Pro - cinematic quality",
        ),
        ModelSpec(
            name="seedance-1-lite",
            kind=video,
            provider=KIE,
            endpoint="/api/v1/seedance/generate",
            default_cost=120,
            builder=_seedance_request,
            validator=_choice("resolution", resolutions),
            provider_model="seedance-1-lite",
            description="Seedance 1.0 Lite - fast generation",
        ),
        ModelSpec(
            name="wan-2.5",
            kind=video,
            provider=KIE,
            endpoint="/api/v1/wan/generate",
            default_cost=125,
            builder=_wan_request,
            validator=_all_of(_single_reference, _choice("resolution", ("720p", "1080p"))),
            description="Wan 2.5 - audio sync & lip-sync",
        ),
        ModelSpec(
            name="kling-2.5-turbo",
            kind=video,
            provider=KIE,
            endpoint="/api/v1/kling/generate",
            default_cost=90,
            builder=_kling_request,
            validator=_single_reference,
            provider_model="kling-2.5-turbo",
            description="Kling 2.5 Turbo",
        ),
        ModelSpec(
            name="kling-2.1",
            kind=video,
            provider=KIE,
            endpoint="/api/v1/kling/generate",
            default_cost=90,
            builder=_kling_request,
            validator=_single_reference,
            provider_model="kling-2.1",
            description="Kling 2.1",
        ),
        # Image (Kie.ai)
        ModelSpec(
            name="4o-image",
            kind=image,
            provider=KIE,
            endpoint="/api/v1/gpt4o-image/generate",
            default_cost=20,
            builder=_gpt4o_image_request,
            validator=variants,
            description="4o Image API",
        ),
        ModelSpec(
            name="flux-kontext",
            kind=image,
            provider=KIE,
            endpoint="/api/v1/gpt4o-image/generate",
            default_cost=5,
            builder=_gpt4o_image_request,
            validator=variants,
            description="Flux Kontext",
        ),
        ModelSpec(
            name="nano-banana",
            kind=image,
            provider=KIE,
            endpoint="/api/v1/gpt4o-image/generate",
            default_cost=50,
            builder=_gpt4o_image_request,
            validator=variants,
            description="Nano Banana - Fast, precise image generation and editing",
        ),
        ModelSpec(
            name="seedream-4",
            kind=image,
            provider=KIE,
            endpoint="/api/v1/seedream/generate",
            default_cost=10,
            builder=_seedream_request,
            validator=_image_count("maxImages", 1, 6),
            provider_model="bytedance-seedream-4-0-250828",
            description="Seedream 4.0 - up to 4K resolution",
        ),
        ModelSpec(
            name="midjourney-v7",
            kind=image,
            provider=KIE,
            endpoint="/api/v1/mj/generate",
            default_cost=20,
            builder=_midjourney_request,
            validator=_single_reference,
            description="Midjourney v7",
        ),
        # Image (Replicate, synchronous)
        ModelSpec(
            name="flux-schnell",
            kind=image,
            provider=REPLICATE,
            endpoint="black-forest-labs/flux-schnell",
            default_cost=3,
            builder=_replicate_image_request,
            validator=_image_count("numOutputs", 1, 4),
            description="Flux Schnell - fast synchronous image generation",
        ),
        # Music (Suno via Kie.ai)
        *(
            ModelSpec(
                name=name,
                kind=music,
                provider=KIE,
                endpoint="/api/v1/generate",
                default_cost=30,
                builder=_suno_request,
                provider_model=provider_model,
                description=description,
            )
            for name, provider_model, description in (
                ("suno-v3.5", "V3_5", "Suno V3.5 - High-quality music generation"),
                ("suno-v4", "V4", "Suno V4 - Enhanced vocals and richer sound"),
                ("suno-v4.5", "V4_5", "Suno V4.5 - Best quality, up to 8 minutes long"),
                ("suno-v4.5-plus", "V4_5PLUS", "Suno V4.5 Plus - Premium quality"),
                ("suno-v5", "V5", "Suno V5"),
            )
        ),
        # Speech, sound effects and audio processing (Kie.ai)
        ModelSpec(
            name="elevenlabs-tts",
            kind=JobKind.SPEECH,
            provider=KIE,
            endpoint="/api/v1/elevenlabs/tts",
            default_cost=20,
            builder=_tts_request,
            description="ElevenLabs text-to-speech",
        ),
        ModelSpec(
            name="elevenlabs-sound-effect-v2",
            kind=JobKind.SOUND_EFFECTS,
            provider=KIE,
            endpoint="/api/v1/jobs/createTask",
            default_cost=10,
            builder=_sound_effect_request,
            provider_model="elevenlabs/sound-effect-v2",
            description="ElevenLabs Sound Effect V2 - 1-22s duration",
        ),
        ModelSpec(
            name="wav-conversion",
            kind=JobKind.AUDIO,
            provider=KIE,
            endpoint="/api/v1/wav/generate",
            default_cost=5,
            builder=_wav_request,
            validator=_requires_source,
            description="Convert audio to WAV",
            requires_prompt=False,
        ),
        ModelSpec(
            name="vocal-removal",
            kind=JobKind.AUDIO,
            provider=KIE,
            endpoint="/api/v1/vocal-removal/generate",
            default_cost=10,
            builder=_vocal_removal_request,
            validator=_all_of(
                _requires_source, _choice("separationType", ("separate_vocal", "split_stem"))
            ),
            description="Vocal removal and stem separation",
            requires_prompt=False,
        ),
    ]


MODEL_CATALOG: dict[str, ModelSpec] = {spec.name: spec for spec in _specs()}


def supported_models(kind: JobKind | None = None) -> list[str]:
    """List model identifiers, optionally only those producing ``kind``."""
    return sorted(name for name, spec in MODEL_CATALOG.items() if kind is None or spec.kind == kind)


def resolve(model: str, kind: JobKind | None = None) -> ModelSpec:
    """Look up the catalog entry for a model.

    Args:
        model: Model identifier (case-insensitive)
        kind: Kind requested by the caller; the model must produce it

    Raises:
        UnsupportedModel: If the model is unknown or produces another kind
    """
    spec = MODEL_CATALOG.get((model or "").strip().lower())
    if spec is None or (kind is not None and spec.kind != kind):
        raise UnsupportedModel(model, kind.value if kind else None, supported_models(kind))
    return spec
