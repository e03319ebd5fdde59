from .context import ContextAssembler
from .prompts import build_system_prompt, detect_mode
from .streaming import ChatCompletionStreamer
from .titles import TitleGenerator

__all__ = [
    "ChatCompletionStreamer",
    "ContextAssembler",
    "TitleGenerator",
    "build_system_prompt",
    "detect_mode",
]
