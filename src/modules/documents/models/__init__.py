from .document import Document
from .signature import DocumentSignature
from .signature_mapping import SignatureMapping, SignatureMappingTemplate
from .signing_request import SigningRequest, Request
from .annotation import DocumentAnnotation

__all__ = [
    'Document', 'DocumentSignature', 'SignatureMapping', 'SignatureMappingTemplate',
    'SigningRequest', 'Request', 'DocumentAnnotation',
]
