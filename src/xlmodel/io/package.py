"""Package layer: zip parts in, zip parts out, with optional Agile encryption."""

from __future__ import annotations

import base64
import logging
import zipfile
from enum import Enum
from io import BytesIO
from typing import Any

import msoffcrypto
from msoffcrypto.exceptions import DecryptionError as _CryptoDecryptionError
from msoffcrypto.exceptions import FileFormatError, InvalidKeyError
from msoffcrypto.format.ooxml import OOXMLFile

from xlmodel.contracts.errors import DecryptionError, PackageError

logger = logging.getLogger(__name__)

OLE_SIGNATURE = bytes.fromhex("D0CF11E0A1B11AE1")


class OutputType(str, Enum):
    BYTES = "bytes"
    BYTEARRAY = "bytearray"
    BASE64 = "base64"
    BINARYSTRING = "binarystring"
    BUFFER = "buffer"
    BLOB = "blob"


class Package:
    """Ordered mapping of part name (no leading ``/``) to raw bytes."""

    def __init__(self, parts: dict[str, bytes] | None = None) -> None:
        self.parts: dict[str, bytes] = dict(parts or {})

    def __contains__(self, name: str) -> bool:
        return name in self.parts

    def __iter__(self):
        return iter(self.parts)

    def get(self, name: str) -> bytes | None:
        return self.parts.get(name)

    def require(self, name: str) -> bytes:
        data = self.parts.get(name)
        if data is None:
            raise PackageError(f"Required package part missing: {name}", details={"part": name})
        return data

    def set(self, name: str, data: bytes) -> None:
        self.parts[name] = data

    def remove(self, name: str) -> None:
        self.parts.pop(name, None)


def _decrypt(data: bytes, password: str | None) -> bytes:
    if password is None:
        raise DecryptionError("Workbook is encrypted; a password is required")
    try:
        office_file = msoffcrypto.OfficeFile(BytesIO(data))
        if not isinstance(office_file, OOXMLFile):
            raise PackageError("Encrypted container does not hold an OOXML workbook")
        office_file.load_key(password=password, verify_password=True)
        out = BytesIO()
        office_file.decrypt(out)
    except InvalidKeyError as e:
        raise DecryptionError("Incorrect password", details={"reason": str(e)}) from e
    except (_CryptoDecryptionError, FileFormatError) as e:
        raise DecryptionError(f"Cannot decrypt workbook: {e}", details={"reason": str(e)}) from e
    return out.getvalue()


def load_package(data: bytes | bytearray | memoryview, password: str | None = None) -> Package:
    """Read a package from raw bytes, decrypting first when it is an encrypted container."""
    data = bytes(data)
    if data.startswith(OLE_SIGNATURE):
        logger.debug("Encrypted container detected (%d bytes)", len(data))
        data = _decrypt(data, password)
    elif password is not None:
        logger.debug("Password given for an unencrypted package; ignoring it")
    try:
        with zipfile.ZipFile(BytesIO(data)) as archive:
            parts = {info.filename.lstrip("/"): archive.read(info) for info in archive.infolist() if not info.is_dir()}
    except zipfile.BadZipFile as e:
        raise PackageError(f"Not a valid workbook package: {e}") from e
    logger.debug("Loaded package with %d parts", len(parts))
    return Package(parts)


def save_package(package: Package, password: str | None = None) -> bytes:
    """Zip the parts in order; encrypt the result when a password is given."""
    buf = BytesIO()
    with zipfile.ZipFile(buf, "w", zipfile.ZIP_DEFLATED) as archive:
        for name, data in package.parts.items():
            archive.writestr(name, data)
    data = buf.getvalue()
    if password is None:
        return data
    out = BytesIO()
    OOXMLFile(BytesIO(data)).encrypt(password, out)
    logger.debug("Encrypted package (%d -> %d bytes)", len(data), len(out.getvalue()))
    return out.getvalue()


def convert_output(data: bytes, output_type: OutputType | str) -> Any:
    output_type = OutputType(output_type)
    if output_type is OutputType.BYTES:
        return data
    if output_type is OutputType.BYTEARRAY:
        return bytearray(data)
    if output_type is OutputType.BASE64:
        return base64.b64encode(data).decode("ascii")
    if output_type is OutputType.BINARYSTRING:
        return data.decode("latin-1")
    if output_type is OutputType.BUFFER:
        return memoryview(data)
    return BytesIO(data)
