"""Field-level encryption for protected health information."""

from scribe_os.crypto.cipher import FieldCipher, create_cipher_from_settings, generate_key

__all__ = ["FieldCipher", "create_cipher_from_settings", "generate_key"]
