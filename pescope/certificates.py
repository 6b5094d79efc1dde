from __future__ import annotations

import io
import logging
import struct
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from cryptography import x509
from cryptography.exceptions import InvalidSignature, UnsupportedAlgorithm
from cryptography.hazmat.primitives.asymmetric import dsa, ec, ed448, ed25519, rsa
from cryptography.hazmat.primitives.serialization import pkcs7
from cryptography.x509.oid import SignatureAlgorithmOID
from signify.authenticode import AuthenticodeFile, AuthenticodeVerificationResult

from pescope.model import CertificateSummary

logger = logging.getLogger(__name__)

WIN_CERT_TYPE_PKCS_SIGNED_DATA = 0x0002

_SIGNATURE_ALGORITHMS = {
    SignatureAlgorithmOID.RSA_WITH_MD5: "MD5-RSA",
    SignatureAlgorithmOID.RSA_WITH_SHA1: "SHA1-RSA",
    SignatureAlgorithmOID.RSA_WITH_SHA224: "SHA224-RSA",
    SignatureAlgorithmOID.RSA_WITH_SHA256: "SHA256-RSA",
    SignatureAlgorithmOID.RSA_WITH_SHA384: "SHA384-RSA",
    SignatureAlgorithmOID.RSA_WITH_SHA512: "SHA512-RSA",
    SignatureAlgorithmOID.RSASSA_PSS: "RSA-PSS",
    SignatureAlgorithmOID.ECDSA_WITH_SHA1: "ECDSA-SHA1",
    SignatureAlgorithmOID.ECDSA_WITH_SHA224: "ECDSA-SHA224",
    SignatureAlgorithmOID.ECDSA_WITH_SHA256: "ECDSA-SHA256",
    SignatureAlgorithmOID.ECDSA_WITH_SHA384: "ECDSA-SHA384",
    SignatureAlgorithmOID.ECDSA_WITH_SHA512: "ECDSA-SHA512",
    SignatureAlgorithmOID.DSA_WITH_SHA1: "DSA-SHA1",
    SignatureAlgorithmOID.DSA_WITH_SHA224: "DSA-SHA224",
    SignatureAlgorithmOID.DSA_WITH_SHA256: "DSA-SHA256",
    SignatureAlgorithmOID.ED25519: "Ed25519",
    SignatureAlgorithmOID.ED448: "Ed448",
}


@dataclass(frozen=True)
class AuthenticodeStatus:
    verified: bool = False
    # (algorithm, hex digest) per signature, in file order
    digests: Tuple[Tuple[str, str], ...] = ()


def _align8(x: int) -> int:
    return (x + 7) & ~7


def split_win_certificates(blob: bytes) -> List[bytes]:
    """
    Split the attribute certificate table into PKCS#7 SignedData blobs.
    Entries are 8-byte aligned WIN_CERTIFICATE records; other types are skipped.
    """
    out: List[bytes] = []
    pos = 0
    while pos + 8 <= len(blob):
        length, _revision, cert_type = struct.unpack_from("<IHH", blob, pos)
        if length < 8 or pos + length > len(blob):
            logger.warning("Truncated WIN_CERTIFICATE entry at +%#x (dwLength=%d)", pos, length)
            break
        if cert_type == WIN_CERT_TYPE_PKCS_SIGNED_DATA:
            out.append(bytes(blob[pos + 8 : pos + length]))
        else:
            logger.debug("Skipping WIN_CERTIFICATE of type %#x", cert_type)
        pos += _align8(length)
    return out


def _block_digests(auth_file: AuthenticodeFile) -> Tuple[Tuple[str, str], ...]:
    # indexed like the WIN_CERTIFICATE blocks, so nested signatures are left out
    return tuple(
        (sig.indirect_data.digest_algorithm().name, sig.indirect_data.digest.hex())
        for sig in auth_file.iter_signatures(signature_types="embedded", include_nested=False)
    )


def authenticode_status(path: str, data: bytes) -> AuthenticodeStatus:
    """Verify the Authenticode signature over `data`, the bytes `path` was parsed from."""
    try:
        with io.BytesIO(data) as f:
            auth_file = AuthenticodeFile.from_stream(f)
            status, err = auth_file.explain_verify()
            digests = _block_digests(auth_file)
    except Exception as e:
        logger.warning("Authenticode verification failed for %s: %s: %s", path, type(e).__name__, e)
        return AuthenticodeStatus()

    if err is not None:
        logger.info("Authenticode signer not verified for %s: %s", path, err)
    return AuthenticodeStatus(verified=status == AuthenticodeVerificationResult.OK, digests=digests)


def _public_key_algorithm(cert: x509.Certificate) -> str:
    try:
        key = cert.public_key()
    except (ValueError, UnsupportedAlgorithm):
        return "unknown"
    if isinstance(key, rsa.RSAPublicKey):
        return "RSA"
    if isinstance(key, ec.EllipticCurvePublicKey):
        return "ECDSA"
    if isinstance(key, dsa.DSAPublicKey):
        return "DSA"
    if isinstance(key, ed25519.Ed25519PublicKey):
        return "Ed25519"
    if isinstance(key, ed448.Ed448PublicKey):
        return "Ed448"
    return type(key).__name__


def _signature_algorithm(cert: x509.Certificate) -> str:
    oid = cert.signature_algorithm_oid
    return _SIGNATURE_ALGORITHMS.get(oid, oid.dotted_string)


def _signature_valid(cert: x509.Certificate, pool: Sequence[x509.Certificate]) -> bool:
    """True when some certificate in the same block issued `cert` and its signature checks out."""
    for candidate in pool:
        if candidate.subject != cert.issuer:
            continue
        try:
            cert.verify_directly_issued_by(candidate)
        except (ValueError, TypeError, InvalidSignature, UnsupportedAlgorithm):
            continue
        return True
    return False


def summarize_pkcs7(
    blob: bytes,
    *,
    signer_verified: bool,
    content_hash: Optional[Tuple[str, str]] = None,
) -> List[CertificateSummary]:
    """
    One summary per certificate in a PKCS#7 SignedData blob.
    Each certificate is reported on its own; no chain is built.
    Raises ValueError when the blob is not valid DER PKCS#7.
    """
    certs = pkcs7.load_der_pkcs7_certificates(blob)
    hash_alg, digest = content_hash if content_hash else (None, None)

    out: List[CertificateSummary] = []
    for cert in certs:
        out.append(
            CertificateSummary(
                issuer=cert.issuer.rfc4514_string(),
                subject=cert.subject.rfc4514_string(),
                not_before=cert.not_valid_before_utc,
                not_after=cert.not_valid_after_utc,
                serial_number=f"{cert.serial_number:x}",
                public_key_algorithm=_public_key_algorithm(cert),
                signature_algorithm=_signature_algorithm(cert),
                signature_valid=_signature_valid(cert, certs),
                signer_verified=signer_verified,
                content_hash_algorithm=hash_alg,
                content_hash=digest,
            )
        )
    return out


def summarize_certificates(path: str, data: bytes, security_blob: bytes) -> List[CertificateSummary]:
    """
    Summaries for every certificate in every PKCS#7 block of the security directory.
    Certificates of nested signatures (inside an unsigned attribute of a block) are not listed.
    """
    blocks = split_win_certificates(security_blob)
    if not blocks:
        return []

    status = authenticode_status(path, data)
    out: List[CertificateSummary] = []
    for idx, block in enumerate(blocks):
        digest = status.digests[idx] if idx < len(status.digests) else None
        try:
            out.extend(summarize_pkcs7(block, signer_verified=status.verified, content_hash=digest))
        except ValueError as e:
            logger.warning("Unreadable PKCS#7 signature block %d in %s: %s", idx, path, e)
    return out
