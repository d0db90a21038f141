import re
from pathlib import Path

import pytest

from exceptions import MissingMetadataError
from storage import (
    RemovalStatus,
    build_storage_path,
    generate_stored_filename,
    remove_physical_file,
    resolve_destination,
    sanitize_path_part,
)

SAMPLE_NAMES = [
    "Cliente Alpha",
    "../../etc/passwd",
    "Año 2024: Revisión #3",
    "tab\there\nnewline",
    "already_safe-name.v2",
    "C:\\Windows\\System32",
    "emoji 🚀 rocket",
    "",
]

def test_sanitize_replaces_unsafe_characters_one_for_one():
    assert sanitize_path_part("Cliente Alpha") == "Cliente_Alpha"
    assert sanitize_path_part("a/b\\c") == "a_b_c"
    assert sanitize_path_part("Año") == "A_o"
    assert sanitize_path_part("Obra-XYZ_1.2") == "Obra-XYZ_1.2"

@pytest.mark.parametrize("name", SAMPLE_NAMES)
def test_sanitize_is_idempotent_and_uses_safe_alphabet(name):
    once = sanitize_path_part(name)
    assert sanitize_path_part(once) == once
    assert re.fullmatch(r"[A-Za-z0-9_.-]*", once)
    assert len(once) == len(name)

def test_sanitize_none_and_empty_yield_empty_string():
    assert sanitize_path_part(None) == ""
    assert sanitize_path_part("") == ""

def test_build_path_for_mantenimientos_with_periodicity_and_equipment():
    path = build_storage_path(
        "uploads",
        "Cliente Alpha",
        "Lugar Beta",
        "Mantenimientos",
        periodicity="Mensual",
        equipment_name="Equipo Gamma",
    )
    assert path == Path("uploads/Cliente_Alpha/Lugar_Beta/Mantenimientos/Mensual/Equipo_Gamma")

def test_build_path_for_mantenimientos_without_equipment_stops_at_service_type():
    path = build_storage_path("uploads", "Cliente Alpha", "Lugar Beta", "Mantenimientos", periodicity="Mensual")
    assert path == Path("uploads/Cliente_Alpha/Lugar_Beta/Mantenimientos")

def test_build_path_for_obras_uses_task_only():
    path = build_storage_path(
        "uploads", "Cliente Alpha", "Lugar Beta", "Obras", equipment_name="Grua", task_id="Obra-XYZ"
    )
    assert path == Path("uploads/Cliente_Alpha/Lugar_Beta/Obras/Obra-XYZ")

def test_build_path_for_levantamientos_needs_equipment_and_task():
    full = build_storage_path(
        "uploads", "C", "L", "Levantamientos", equipment_name="Bomba 1", task_id="T-9"
    )
    assert full == Path("uploads/C/L/Levantamientos/Bomba_1/T-9")

    partial = build_storage_path("uploads", "C", "L", "Levantamientos", task_id="T-9")
    assert partial == Path("uploads/C/L/Levantamientos")

def test_build_path_for_unknown_service_type_has_no_sub_levels():
    path = build_storage_path(
        "uploads", "C", "L", "Otro Servicio", periodicity="Mensual", equipment_name="E", task_id="T"
    )
    assert path == Path("uploads/C/L/Otro_Servicio")

def test_build_path_matches_service_type_before_sanitizing():
    path = build_storage_path("uploads", "C", "L", "Obras ", task_id="T-1")
    assert path == Path("uploads/C/L/Obras_")

def test_build_path_is_deterministic():
    args = ("root", "Cliente", "Lugar", "Mantenimientos")
    kwargs = {"periodicity": "Anual", "equipment_name": "Chiller"}
    assert build_storage_path(*args, **kwargs) == build_storage_path(*args, **kwargs)

def test_build_path_never_escapes_root_with_dot_segments():
    path = build_storage_path("uploads", "..", ".", "Obras", task_id="..")
    assert path == Path("uploads/__/_/Obras/__")
    assert ".." not in path.parts

@pytest.mark.parametrize(
    "names, missing",
    [
        ((None, "L", "Obras"), ["clienteNombre"]),
        (("C", "", "Obras"), ["lugarNombre"]),
        ((None, None, None), ["clienteNombre", "lugarNombre", "tipoServicioNombre"]),
        (("C", None, None), ["lugarNombre", "tipoServicioNombre"]),
    ],
)
def test_build_path_reports_missing_fields_in_order(names, missing):
    with pytest.raises(MissingMetadataError) as exc_info:
        build_storage_path("uploads", *names)
    assert exc_info.value.missing_fields == missing
    assert [e["field"] for e in exc_info.value.errors] == missing

def test_stored_filename_keeps_extension_and_is_unique():
    first = generate_stored_filename("Informe final.pdf")
    second = generate_stored_filename("Informe final.pdf")
    assert first != second
    assert first.startswith("Informe_final_")
    assert first.endswith(".pdf")
    assert re.fullmatch(r"[A-Za-z0-9_.-]+", first)

def test_stored_filename_keeps_non_ascii_extension_verbatim():
    name = generate_stored_filename("plano ñ.ñdwg")
    assert name.startswith("plano__")
    assert name.endswith(".ñdwg")

def test_stored_filename_without_extension():
    name = generate_stored_filename("README")
    assert name.startswith("README_")
    assert "." not in name

@pytest.mark.asyncio
async def test_resolve_destination_creates_directory_idempotently(tmp_path):
    directory = tmp_path / "a" / "b" / "c"
    first = await resolve_destination(directory, "x.txt")
    second = await resolve_destination(directory, "x.txt")
    assert directory.is_dir()
    assert first.parent == directory == second.parent
    assert first != second

@pytest.mark.asyncio
async def test_remove_physical_file_outcomes(tmp_path):
    target = tmp_path / "file.bin"
    target.write_bytes(b"data")

    removed = await remove_physical_file(target)
    assert removed.status is RemovalStatus.REMOVED
    assert not target.exists()

    absent = await remove_physical_file(target)
    assert absent.status is RemovalStatus.ALREADY_ABSENT
    assert not absent.failed

    a_directory = tmp_path / "not_a_file"
    a_directory.mkdir()
    failed = await remove_physical_file(a_directory)
    assert failed.status is RemovalStatus.FAILED
    assert failed.failed
    assert isinstance(failed.error, OSError)
