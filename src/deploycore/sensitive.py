"""
Sensitive variables for offline-drop deployments.

Sensitive variables travel as an AES-128-CBC encrypted JSON object next to
the plain variables file (``variables.json`` -> ``variables.secret``). The
key is derived from a password; the base64 "salt" argument is the cipher's
initialization vector. Both must be supplied together.

Decrypted values override plain-file values that share a key.
"""

from __future__ import annotations

import base64
import json
import logging
from pathlib import Path
from typing import Any, Mapping, Optional, Union

from cryptography.hazmat.primitives import hashes, padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from deploycore.errors import (
    SensitiveVariablesConfigError,
    SensitiveVariablesDecryptError,
    VariablesFileNotFound,
)
from deploycore.variables import VariableDictionary

logger = logging.getLogger(__name__)

__all__ = [
    "load_variables",
    "decrypt_variables",
    "encrypt_variables",
    "SENSITIVE_VARIABLES_SUFFIX",
]

SENSITIVE_VARIABLES_SUFFIX = ".secret"

# Key derivation parameters; changing these breaks every existing drop
_KEY_SALT = b"DeployCoreSensitiveVariables"
_KEY_ITERATIONS = 1000
_KEY_LENGTH = 16


def _derive_key(password: str) -> bytes:
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA1(),
        length=_KEY_LENGTH,
        salt=_KEY_SALT,
        iterations=_KEY_ITERATIONS,
    )
    return kdf.derive(password.encode("utf-8"))


def _decode_iv(salt: str) -> bytes:
    return base64.b64decode(salt, validate=True)


def encrypt_variables(values: Mapping[str, Any], password: str, salt: str) -> bytes:
    """
    Encrypt a mapping of variables into the sensitive-variables format.

    Args:
        values: Variables to encrypt
        password: Password the key is derived from
        salt: Base64 encoded 16-byte initialization vector

    Returns:
        Ciphertext bytes suitable for a ``.secret`` file
    """
    plaintext = json.dumps(dict(values)).encode("utf-8")
    padder = padding.PKCS7(algorithms.AES.block_size).padder()
    padded = padder.update(plaintext) + padder.finalize()

    encryptor = Cipher(algorithms.AES(_derive_key(password)), modes.CBC(_decode_iv(salt))).encryptor()
    return encryptor.update(padded) + encryptor.finalize()


def decrypt_variables(ciphertext: bytes, password: str, salt: str) -> VariableDictionary:
    """
    Decrypt sensitive variables.

    Raises:
        SensitiveVariablesDecryptError: Bad password, salt or ciphertext.
    """
    try:
        decryptor = Cipher(algorithms.AES(_derive_key(password)), modes.CBC(_decode_iv(salt))).decryptor()
        padded = decryptor.update(ciphertext) + decryptor.finalize()

        unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
        plaintext = unpadder.update(padded) + unpadder.finalize()

        data = json.loads(plaintext.decode("utf-8"))
    except ValueError as e:
        # binascii.Error, bad padding, UnicodeDecodeError and JSONDecodeError are all ValueErrors
        raise SensitiveVariablesDecryptError(
            "Cannot decrypt sensitive-variables. Check your password and salt are correct."
        ) from e

    if not isinstance(data, dict):
        raise SensitiveVariablesDecryptError("Decrypted sensitive-variables are not a JSON object.")

    return VariableDictionary(data)


def load_variables(
    variables_file: Optional[Union[str, Path]] = None,
    password: Optional[str] = None,
    salt: Optional[str] = None,
    sensitive_variables_file: Optional[Union[str, Path]] = None,
) -> VariableDictionary:
    """
    Load the variables for a deployment.

    Args:
        variables_file: Plain JSON variables file
        password: Sensitive-variables password
        salt: Base64 encoded initialization vector for the sensitive variables
        sensitive_variables_file: Encrypted variables (defaults to the
            variables file with a ``.secret`` suffix)

    Returns:
        The plain variables, overridden by any decrypted sensitive variables

    Raises:
        VariablesFileNotFound: A named file does not exist
        SensitiveVariablesConfigError: Password without salt or salt without password
        SensitiveVariablesDecryptError: Decryption failed
    """
    variables_path = Path(variables_file) if variables_file else None
    if variables_path is not None and not variables_path.is_file():
        raise VariablesFileNotFound(variables_path)

    has_password = bool(password)
    has_salt = bool(salt and salt.strip())
    if has_password and not has_salt:
        raise SensitiveVariablesConfigError(
            "sensitiveVariablesSalt option must be supplied if sensitiveVariablesPassword option is supplied."
        )
    if has_salt and not has_password:
        raise SensitiveVariablesConfigError(
            "sensitiveVariablesPassword option must be supplied if sensitiveVariablesSalt option is supplied."
        )

    plain = VariableDictionary.from_file(variables_path) if variables_path else VariableDictionary()
    if not has_password:
        return plain

    if sensitive_variables_file:
        sensitive_path = Path(sensitive_variables_file)
        if not sensitive_path.is_file():
            raise VariablesFileNotFound(sensitive_path)
    elif variables_path is not None:
        sensitive_path = variables_path.with_suffix(SENSITIVE_VARIABLES_SUFFIX)
        if not sensitive_path.is_file():
            logger.info(f"No sensitive variables found at {sensitive_path}")
            return plain
    else:
        logger.info("No variables file was supplied, so no sensitive variables were loaded")
        return plain

    sensitive = decrypt_variables(sensitive_path.read_bytes(), password, salt)
    logger.info(f"Loaded {len(sensitive)} sensitive variables from {sensitive_path}")
    return plain.merge(sensitive)
