"""
Campaign Preview (client side)

Reassembles the streamed plan and replays each channel's message as a
progressively typed chat bubble.
"""

from .assembler import AssemblerClosed, MalformedPayload, StreamAssembler
from .export import export_plan, plan_filename
from .session import SessionController, SessionState, SessionStatus
from .typing_animator import Bubble, BubbleSender, TypingAnimator, TypingSession

__all__ = [
    "AssemblerClosed",
    "MalformedPayload",
    "StreamAssembler",
    "export_plan",
    "plan_filename",
    "SessionController",
    "SessionState",
    "SessionStatus",
    "Bubble",
    "BubbleSender",
    "TypingAnimator",
    "TypingSession",
]
