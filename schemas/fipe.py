"""
Pydantic schemas for FIPE API payloads.

FIPE answers with Portuguese, PascalCase field names; the schemas expose
them under English attribute names through aliases.
"""

from pydantic import BaseModel, Field, field_validator
from typing import Any, List, Optional, Union


class ReferenceTablePayload(BaseModel):
    """Entry of ConsultarTabelaDeReferencia, e.g. {"Codigo": 328, "Mes": "dezembro/2025 "}"""
    code: int = Field(..., alias="Codigo")
    label: str = Field(..., alias="Mes")

    class Config:
        populate_by_name = True


class BrandPayload(BaseModel):
    """Entry of ConsultarMarcas, e.g. {"Label": "Fiat", "Value": "21"}"""
    code: str = Field(..., alias="Value")
    label: str = Field(..., alias="Label")

    @field_validator("code", mode="before")
    @classmethod
    def code_as_string(cls, v: Any) -> Any:
        return str(v) if isinstance(v, int) else v

    class Config:
        populate_by_name = True


class ModelPayload(BaseModel):
    """Entry of ConsultarModelos.Modelos; FIPE sends the code as an integer"""
    code: str = Field(..., alias="Value")
    label: str = Field(..., alias="Label")

    @field_validator("code", mode="before")
    @classmethod
    def code_as_string(cls, v: Any) -> Any:
        return str(v) if isinstance(v, int) else v

    class Config:
        populate_by_name = True


class ModelYearPayload(BaseModel):
    """Entry of ConsultarAnoModelo, e.g. {"Label": "2020 Gasolina", "Value": "2020-1"}"""
    value: str = Field(..., alias="Value")
    label: str = Field(..., alias="Label")

    class Config:
        populate_by_name = True


class ModelsPayload(BaseModel):
    """ConsultarModelos response: models of a brand plus the brand-wide year list"""
    models: List[ModelPayload] = Field(..., alias="Modelos")
    years: Optional[List[ModelYearPayload]] = Field(None, alias="Anos")

    class Config:
        populate_by_name = True


class PricePayload(BaseModel):
    """ConsultarValorComTodosParametros response"""
    amount: str = Field(..., alias="Valor")  # "R$ 4.147,00"
    brand: str = Field(..., alias="Marca")
    model: str = Field(..., alias="Modelo")
    model_year: int = Field(..., alias="AnoModelo")
    fuel: str = Field(..., alias="Combustivel")
    fipe_code: str = Field(..., alias="CodigoFipe")
    reference_month: str = Field(..., alias="MesReferencia")
    authentication: Optional[str] = Field(None, alias="Autenticacao")
    vehicle_type: Optional[int] = Field(None, alias="TipoVeiculo")
    fuel_abbreviation: Optional[str] = Field(None, alias="SiglaCombustivel")
    queried_at: Optional[str] = Field(None, alias="DataConsulta")

    class Config:
        populate_by_name = True


class FipeErrorPayload(BaseModel):
    """Error body FIPE returns with HTTP 200, e.g. {"codigo": "0", "erro": "Parâmetros inválidos"}"""
    code: str = Field(..., alias="codigo")
    message: str = Field(..., alias="erro")

    @field_validator("code", mode="before")
    @classmethod
    def code_as_string(cls, v: Union[str, int]) -> str:
        return str(v)

    class Config:
        populate_by_name = True
