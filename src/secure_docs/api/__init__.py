from .errors import PROBLEM_MEDIA_TYPE, add_document_error_handlers, problem_response

__all__ = ["add_document_error_handlers", "problem_response", "PROBLEM_MEDIA_TYPE"]
