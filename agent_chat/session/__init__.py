from agent_chat.session.controller import SessionController, StreamingSession, TurnState

__all__ = ["SessionController", "StreamingSession", "TurnState"]
