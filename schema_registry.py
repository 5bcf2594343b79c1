"""
Per-entity import schemas: the file name each CRM export usually carries,
the columns an import of that entity cannot do without, and the display
text shown next to each import type.
"""
from typing import Dict, List, NamedTuple

from models.schemas import ImportType


class TypeDescription(NamedTuple):
    title: str
    description: str
    icon: str


class ImportSchema(NamedTuple):
    expected_file_name: str
    required_columns: List[str]
    template_headers: List[str]
    description: TypeDescription


SCHEMAS: Dict[ImportType, ImportSchema] = {
    ImportType.clientes: ImportSchema(
        expected_file_name="DatosExportados_*.csv",
        required_columns=["NIF", "Nombre completo", "IdAccount", "Email contacto", "Provincia"],
        template_headers=[
            "nif", "id_account", "nombre_completo", "email_contacto",
            "telefono_contacto", "domicilio", "codigo_postal", "provincia", "pais",
        ],
        description=TypeDescription(
            "Clientes",
            "Importar información de clientes: NIF, nombre, contacto, dirección",
            "people",
        ),
    ),
    ImportType.polizas: ImportSchema(
        expected_file_name="POLIZAS.csv",
        required_columns=[
            "Número de la póliza", "Ramo", "Nombre del cliente", "IdAccount", "Situación de la póliza",
        ],
        template_headers=[
            "numero_poliza", "id_account", "nombre_cliente", "ramo", "gestora",
            "situacion", "prima_anual", "fecha_efecto", "fecha_vencimiento",
        ],
        description=TypeDescription(
            "Pólizas",
            "Importar pólizas de seguros: número de póliza, asegurado, coberturas",
            "description",
        ),
    ),
    ImportType.recibos: ImportSchema(
        expected_file_name="RECIBOS.csv",
        required_columns=["Nº recibo", "Nº póliza", "Cliente", "Prima total", "Situación del recibo"],
        template_headers=[
            "numero_recibo", "numero_poliza", "id_account", "prima_total",
            "situacion_recibo", "fecha_emision", "forma_pago",
        ],
        description=TypeDescription(
            "Recibos",
            "Importar recibos de pago: fecha, importe, estado de pago",
            "receipt",
        ),
    ),
    ImportType.siniestros: ImportSchema(
        expected_file_name="SINIESTROS.csv",
        required_columns=[
            "Número de siniestro", "Número de póliza", "Cliente", "Situación del siniestro", "IdAccount",
        ],
        template_headers=[
            "numero_siniestro", "numero_poliza", "id_account", "situacion_siniestro",
            "fecha_ocurrencia", "fecha_apertura", "tramitador",
        ],
        description=TypeDescription(
            "Siniestros",
            "Importar siniestros: fecha, descripción, estado, indemnización",
            "warning",
        ),
    ),
}


def expected_file_name(import_type: ImportType) -> str:
    """Conventional export file name; a hint for the user, never enforced."""
    return SCHEMAS[ImportType(import_type)].expected_file_name


def required_columns(import_type: ImportType) -> List[str]:
    return list(SCHEMAS[ImportType(import_type)].required_columns)


def template_headers(import_type: ImportType) -> List[str]:
    return list(SCHEMAS[ImportType(import_type)].template_headers)


def describe(import_type: ImportType) -> TypeDescription:
    return SCHEMAS[ImportType(import_type)].description
