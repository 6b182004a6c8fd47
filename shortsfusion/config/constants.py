"""
Application Constants Configuration
"""

from typing import Dict, List


# Token cost tables (tokens per request)
STYLE_COSTS: Dict[str, int] = {
    "cinematic": 5,
    "animated": 5,
    "realistic": 5,
    "minimal": 3,
}

DURATION_COSTS: Dict[int, int] = {
    30: 3,
    60: 5,
    90: 7,
}

# Two-phase editing costs
ANIMATION_COST: int = 1
SLIDE_REGENERATION_COST: int = 1

# Ledger reasons
REASON_GENERATE_VIDEO = "GENERATE_VIDEO"
REASON_REFUND_FAILED_VIDEO = "REFUND_FAILED_VIDEO"
REASON_ANIMATE_SLIDE = "ANIMATE_SLIDE"
REASON_UNANIMATE_SLIDE = "UNANIMATE_SLIDE"
REASON_REGENERATE_SLIDE = "REGENERATE_SLIDE"
REASON_REGENERATE_SLIDE_REFUND = "REGENERATE_SLIDE_REFUND"
REASON_SIGNUP_GRANT = "SIGNUP_GRANT"
REASON_PLAN_CHANGE = "PLAN_CHANGE"

# Pipeline shapes
FLOW_SINGLE_SHOT = "single_shot"
FLOW_TWO_PHASE = "two_phase"
SUPPORTED_FLOWS: List[str] = [FLOW_SINGLE_SHOT, FLOW_TWO_PHASE]

# Script / scene layout
SECONDS_PER_SCENE: int = 12

# Image style modifiers appended to scene prompts
STYLE_PRESETS: Dict[str, str] = {
    "cinematic": "cinematic, film grain, dramatic lighting, 8k",
    "animated": "cartoon animation style, vibrant colors, playful",
    "realistic": "photorealistic, high detail, professional photography, 8k",
    "minimal": "minimalist design, clean, simple shapes, flat colors",
}

# Placeholder used when a scene image cannot be generated
PLACEHOLDER_IMAGE_URL: str = (
    "https://via.placeholder.com/576x1024/667eea/ffffff?text=Scene+{scene_number}"
)

# Voice selectors mapped to ElevenLabs voice ids
VOICE_MAP: Dict[str, str] = {
    "default": "pNInz6obpgDQGcFmaJgB",
    "male-1": "pNInz6obpgDQGcFmaJgB",
    "male-2": "yoZ06aMxZJJ28mfd3POQ",
    "female-1": "EXAVITQu4vr4xnSDxMaL",
    "female-2": "cgSgspJ2msm6clMCkdW9",
    "british": "iP95p4xoKVk53GoZ742B",
}

# Plan tiers accepted from the payment webhook
SUPPORTED_PLANS: List[str] = ["free", "creator", "pro", "business"]

# Provider adapter retry configuration
PROVIDER_MAX_ATTEMPTS: int = 3
RETRY_INITIAL_DELAY_S: float = 2
RETRY_MAX_DELAY_S: float = 20

# Scene image retry (one retry, then placeholder)
SCENE_IMAGE_ATTEMPTS: int = 2

# Render output
RENDER_WIDTH: int = 1080
RENDER_HEIGHT: int = 1920
RENDER_FRAME_RATE: int = 30

# Listing
DEFAULT_PAGE_SIZE: int = 50
