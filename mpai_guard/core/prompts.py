"""
System prompt assembly for the analysis model.
"""

from .classification import Bandwidth, Method, OutputStyle, RoleContext, describe_method

BASE_INSTRUCTIONS = (
    "You are a multi-perspective analysis assistant. Examine the user's "
    "situation through several distinct perspectives, surface the tensions "
    "between them, and offer an integrated view."
)

_STYLE_GUIDANCE = {
    OutputStyle.NATURAL: "Write in flowing conversational prose without headings.",
    OutputStyle.STRUCTURED: "Use clear headings and name each perspective explicitly.",
    OutputStyle.ABBREVIATED: "Be brief: key points only, no more than a few short bullets.",
}

_ROLE_GUIDANCE = {
    RoleContext.PROFESSIONAL: "Frame the analysis for a professional or organizational setting.",
    RoleContext.PERSONAL: "Frame the analysis for the user's personal life, warmly and directly.",
}

_BANDWIDTH_GUIDANCE = {
    Bandwidth.LOW: "The user has little capacity right now; lead with the single most useful insight.",
    Bandwidth.MEDIUM: "",
    Bandwidth.HIGH: "The user wants depth; a thorough answer is welcome.",
}


def build_system_prompt(
    method: Method,
    output_style: OutputStyle,
    role_context: RoleContext,
    bandwidth: Bandwidth = Bandwidth.MEDIUM,
) -> str:
    sections = [
        BASE_INSTRUCTIONS,
        f"Method: {method.value}. {describe_method(method)}.",
        _STYLE_GUIDANCE[output_style],
        _ROLE_GUIDANCE[role_context],
        _BANDWIDTH_GUIDANCE[bandwidth],
    ]
    return "\n\n".join(s for s in sections if s)
