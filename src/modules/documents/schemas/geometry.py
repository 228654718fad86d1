from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from modules.documents.services.coordinates import (
    PageSize, Rect, TOLERANCE, clamp_to_page, to_relative,
)


class SignatureField(BaseModel):
    """Campo de firma en forma relativa; se valida una sola vez al entrar."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    page: int = Field(ge=1)
    relative_x: float = Field(alias="relativeX", ge=0, le=1)
    relative_y: float = Field(alias="relativeY", ge=0, le=1)
    relative_width: float = Field(alias="relativeWidth", gt=0, le=1)
    relative_height: float = Field(alias="relativeHeight", gt=0, le=1)
    signer_index: int = Field(default=0, alias="signerIndex", ge=0)

    @model_validator(mode="after")
    def inside_page(self):
        if self.relative_x + self.relative_width > 1 + TOLERANCE:
            raise ValueError("El campo excede el ancho de la página")
        if self.relative_y + self.relative_height > 1 + TOLERANCE:
            raise ValueError("El campo excede el alto de la página")
        return self

    @property
    def rect(self) -> Rect:
        return Rect(self.relative_x, self.relative_y, self.relative_width, self.relative_height)

    @classmethod
    def from_rect(cls, page: int, rect: Rect, signer_index: int = 0) -> "SignatureField":
        return cls(page=page, relativeX=rect.x, relativeY=rect.y, relativeWidth=rect.width,
                   relativeHeight=rect.height, signerIndex=signer_index)

    def to_record(self) -> dict:
        return self.model_dump(by_alias=True)


class SignatureFieldInput(BaseModel):
    """
    Campo tal como llega del cliente: relativo, o absoluto junto con el tamaño
    intrínseco de la página.
    """

    page: int = Field(ge=1)
    relativeX: Optional[float] = None
    relativeY: Optional[float] = None
    relativeWidth: Optional[float] = None
    relativeHeight: Optional[float] = None
    x: Optional[float] = None
    y: Optional[float] = None
    width: Optional[float] = None
    height: Optional[float] = None
    pageWidth: Optional[float] = Field(default=None, gt=0)
    pageHeight: Optional[float] = Field(default=None, gt=0)
    signerIndex: int = Field(default=0, ge=0)

    @model_validator(mode="after")
    def has_geometry(self):
        relative = [self.relativeX, self.relativeY, self.relativeWidth, self.relativeHeight]
        absolute = [self.x, self.y, self.width, self.height, self.pageWidth, self.pageHeight]
        if not all(v is not None for v in relative) and not all(v is not None for v in absolute):
            raise ValueError("Se requieren coordenadas relativas, o absolutas con el tamaño de página")
        return self

    def normalized(self) -> SignatureField:
        if self.relativeX is not None and None not in (self.relativeY, self.relativeWidth, self.relativeHeight):
            rect = Rect(self.relativeX, self.relativeY, self.relativeWidth, self.relativeHeight)
        else:
            rect = to_relative(Rect(self.x, self.y, self.width, self.height),
                               PageSize(self.pageWidth, self.pageHeight))
            rect = clamp_to_page(rect)
        return SignatureField.from_rect(self.page, rect, self.signerIndex)


class SignatureMappingRequest(BaseModel):
    fields: List[SignatureFieldInput] = Field(min_length=1)
    isTemplate: bool = False


class SignatureMappingResponse(BaseModel):
    id: int
    documentId: int
    fields: List[SignatureField]
    isTemplate: bool


class TemplateRequest(BaseModel):
    name: str = Field(min_length=1)


class SignatureRequest(BaseModel):
    field: SignatureFieldInput
    imageData: Optional[str] = None
    source: str = "canvas"


class AnnotationsRequest(BaseModel):
    annotations: List[Any]


class RotateRequest(BaseModel):
    rotation: int
    pages: Optional[List[int]] = None


class PromoteDocumentRequest(BaseModel):
    finalFileName: str = Field(min_length=1)
