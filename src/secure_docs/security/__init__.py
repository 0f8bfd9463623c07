from .encryption import EncryptionEngine
from .file_ids import generate_file_id

__all__ = ["EncryptionEngine", "generate_file_id"]
