"""Category-driven prompt templates for product reveal videos."""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from app.schemas import JobRecord, PromptSpec

# Enumeration order matters: ties keep the earlier category.
CATEGORY_KEYWORDS: Tuple[Tuple[str, Tuple[str, ...]], ...] = (
    (
        "electronics",
        (
            "phone", "laptop", "headphone", "earbud", "speaker", "camera", "tablet",
            "charger", "console", "keyboard", "monitor", "drone", "gadget", "device",
            "wireless", "bluetooth", "usb", "electronic",
        ),
    ),
    (
        "food_beverage",
        (
            "coffee", "snack", "drink", "beverage", "soda", "juice", "chocolate",
            "sauce", "burger", "pizza", "candy", "cookie", "beer", "wine", "energy bar",
            "cereal", "food", "flavor", "organic",
        ),
    ),
    (
        "beauty_personal_care",
        (
            "serum", "cream", "lotion", "lipstick", "mascara", "skincare", "shampoo",
            "perfume", "fragrance", "cosmetic", "moisturizer", "cleanser", "beauty",
            "nail polish", "sunscreen",
        ),
    ),
    (
        "jewelry_accessories",
        (
            "watch", "jewelry", "jewellery", "bracelet", "necklace", "earring", "pendant",
            "diamond", "gold", "silver", "stainless", "steel", "sunglasses", "wallet",
            "handbag", "ring",
        ),
    ),
    (
        "home_decor",
        (
            "lamp", "candle", "vase", "sofa", "chair", "table", "rug", "pillow",
            "blanket", "mug", "planter", "furniture", "decor", "kitchen",
        ),
    ),
    (
        "apparel",
        (
            "shirt", "dress", "jacket", "hoodie", "sneaker", "shoe", "jeans", "pants",
            "sweater", "coat", "skirt", "apparel", "t-shirt", "cotton", "fabric",
        ),
    ),
)

DEFAULT_CATEGORY = "apparel"

# Whole words with an optional plural ending, so "ring" never hits "spring" or "earring".
_KEYWORD_PATTERNS: Tuple[Tuple[str, Tuple[re.Pattern, ...]], ...] = tuple(
    (category, tuple(re.compile(rf"\b{re.escape(keyword)}(?:e?s)?\b") for keyword in keywords))
    for category, keywords in CATEGORY_KEYWORDS
)

_TEMPLATES: Dict[str, Tuple[str, List[str]]] = {
    "electronics": (
        "electronics_showroom_struct_v1",
        [
            "Futuristic minimal photoreal showroom for: {subject}.",
            "Begin in softly lit void with reflective gradients; clean architecture phases in.",
            "Energy ripple constructs a wireframe silhouette, then dissolves into the real device.",
            "Macro glide highlights glass and metal curvature; volumetric beams across lens.",
            "End on centered hero frame; no text.",
        ],
    ),
    "food_beverage": (
        "food_crave_struct_v1",
        [
            "Crave cinematic black void for: {subject}.",
            "Start with macro textures (fizz, steam, ice). A glowing wave reveals the product silhouette.",
            "Condensation and chill fog build; hold a centered hero on reflective surface.",
            "No on-screen text.",
        ],
    ),
    "beauty_personal_care": (
        "beauty_pastel_struct_v1",
        [
            "Luxury pastel cinematic for: {subject}.",
            "A floating bloom cradle opens to reveal the product; silk ribbons lift gently.",
            "Soft golden top-light; warm ambient fill; petals drift; end on soft hero hold.",
            "No text.",
        ],
    ),
    "jewelry_accessories": (
        "jewelry_luxe_struct_v1",
        [
            "Luxury macro showcase for: {subject}.",
            "Open on a dark velvet plinth; a slow light sweep catches polished edges and facets.",
            "Camera: macro orbit with shallow depth of field; Lighting: crisp rim light with soft reflections.",
            "End on a centered hero frame with a gentle glint; no text.",
        ],
    ),
    "home_decor": (
        "home_interior_struct_v1",
        [
            "Warm editorial interior for: {subject}.",
            "Morning light drifts across a calm, styled room; the product settles into place.",
            "Camera: slow dolly push-in; Lighting: natural window light with soft shadows.",
            "End on a balanced hero composition; no text.",
        ],
    ),
    "apparel": (
        "apparel_minimal_struct_v1",
        [
            "Fashion minimalism for: {subject}.",
            "Fabric close-ups ripple; color swatches morph; garment rotates in clean void.",
            "Camera: slow parallax orbit; Lighting: studio white; No text.",
        ],
    ),
}

STYLE_HEADERS = {
    "cinematic": "Cinematic, photorealistic hero product reveal.",
    "creative_animation": "Creative, playful animation with cohesive motion grammar.",
}

_WS_RX = re.compile(r"\s+")


@dataclass(frozen=True)
class BuiltPrompt:
    rendered_text: str
    category: str
    template_id: str


def _collapse(text: str) -> str:
    return _WS_RX.sub(" ", text or "").strip()


def classify(description: str, hint: Optional[str] = None) -> str:
    """Return the category whose keywords occur most often as whole words; all-zero falls back to the default."""

    haystack = f"{description or ''} {hint or ''}".lower()
    best_category = DEFAULT_CATEGORY
    best_hits = 0
    for category, patterns in _KEYWORD_PATTERNS:
        hits = sum(len(pattern.findall(haystack)) for pattern in patterns)
        if hits > best_hits:
            best_category, best_hits = category, hits
    return best_category


def build_prompt(description: str, hint: Optional[str] = None) -> BuiltPrompt:
    category = classify(description, hint)
    template_id, lines = _TEMPLATES[category]
    subject = _collapse(description) or "the product"
    text = " ".join(line.format(subject=subject) for line in lines)
    hint_text = _collapse(hint or "")
    if hint_text:
        text = f"{text} Creative direction: {hint_text.rstrip('.')}."
    return BuiltPrompt(rendered_text=_collapse(text), category=category, template_id=template_id)


def _scene_lines(spec: PromptSpec) -> List[str]:
    lines: List[str] = []
    for scene in spec.scenes:
        beats = "; ".join(b.strip() for b in scene.beats if b and b.strip())
        shots = "; ".join(
            f"{shot.camera} shot of {shot.subject}: {shot.action}".strip()
            for shot in scene.shots
        )
        duration = f" ({scene.duration_s:g}s)" if scene.duration_s else ""
        line = f"Scene {scene.id}{duration}: {beats}."
        if shots:
            line += f" Shots: {shots}."
        lines.append(line)
    return lines


def _audio_line(spec: PromptSpec) -> str:
    audio = spec.audio
    if audio is None or not audio.preference:
        return ""
    if audio.preference == "with_sound":
        sfx = ", ".join(audio.sfx_hints) or "tasteful SFX"
        line = f"Sound design: {sfx}."
        if audio.voiceover_script:
            line += f' Dialogue: "{audio.voiceover_script.strip()}"'
        return line
    return "Silent visual, avoid text overlays."


def compose_generation_prompt(job: JobRecord, built: BuiltPrompt) -> str:
    """Merge the category template with the job's style, scenes, brand, CTA and audio cues."""

    spec = job.prompt_v1 or PromptSpec()
    parts: List[str] = []

    header = STYLE_HEADERS.get((spec.style or "").strip().lower())
    if header:
        parts.append(header)
    parts.append(built.rendered_text)
    parts.extend(_scene_lines(spec))

    brand = job.brief.brand if job.brief else None
    if brand and brand.name:
        parts.append(f"Brand: {brand.name}.")
    if brand and brand.slogan:
        parts.append(f'Tagline mood: "{brand.slogan}".')

    cta_copy = spec.cta.copy_text.strip() if spec.cta and spec.cta.copy_text else ""
    parts.append(f"End on a clean hero frame. CTA vibe: {cta_copy}." if cta_copy else "End on a clean hero frame.")

    audio = _audio_line(spec)
    if audio:
        parts.append(audio)

    return _collapse(" ".join(parts))


__all__ = [
    "BuiltPrompt",
    "CATEGORY_KEYWORDS",
    "DEFAULT_CATEGORY",
    "STYLE_HEADERS",
    "build_prompt",
    "classify",
    "compose_generation_prompt",
]
