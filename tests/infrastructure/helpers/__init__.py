from .generators import bgr_frame, make_document, make_jpeg, session_document

__all__ = ["bgr_frame", "make_document", "make_jpeg", "session_document"]
