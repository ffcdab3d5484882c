"""
XLSX summary generator for the vector topology importer.

This module generates an Excel (.xlsx) workbook summarizing one import.

The generated workbook includes:
    - Summary: run settings, census counts, cleaning and area statistics
    - Areas: one row per area with its size and categories; overlapping and
      uncategorized areas are highlighted
    - Messages: warnings and consistency guidance of the run
"""

from pathlib import Path
from typing import Dict, List, Optional, Tuple

from openpyxl import Workbook
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.utils import get_column_letter

from utils.logger import get_logger

logger = get_logger(__name__)

HEADER_FILL = PatternFill(start_color='366092', end_color='366092', fill_type='solid')
HEADER_FONT = Font(bold=True, color='FFFFFF', size=11)
OVERLAP_FILL = PatternFill(start_color='FCE4D6', end_color='FCE4D6', fill_type='solid')
NOCAT_FILL = PatternFill(start_color='EDEDED', end_color='EDEDED', fill_type='solid')


def _style_header(ws, n_columns: int) -> None:
    for col_num in range(1, n_columns + 1):
        cell = ws.cell(row=1, column=col_num)
        cell.fill = HEADER_FILL
        cell.font = HEADER_FONT
        cell.alignment = Alignment(horizontal='center', vertical='center')
    ws.freeze_panes = 'A2'


def _set_widths(ws, widths: List[int]) -> None:
    for col_num, width in enumerate(widths, 1):
        ws.column_dimensions[get_column_letter(col_num)].width = width


def build_summary_rows(summary: Dict) -> List[Tuple[str, str, object]]:
    """
    Flatten an import summary into (section, metric, value) rows.

    Args:
        summary: ImportResult.to_dict() output

    Returns:
        Rows in display order
    """
    rows = [
        ('Run', 'Source', summary['source']),
        ('Run', 'Output', summary['output']),
        ('Run', 'Layers', ', '.join(summary['layers'])),
        ('Run', 'Traversals', summary['traversals']),
        ('Run', 'Split distance', summary['split_distance']),
        ('Run', '3D output', summary['with_z']),
    ]
    for key in ('min_area', 'snap', 'no_clean', 'key_column', 'where'):
        rows.append(('Settings', key, summary['settings'].get(key)))
    for key, value in summary['census'].items():
        if not isinstance(value, dict):
            rows.append(('Census', key, value))
    for key, value in summary['import'].items():
        rows.append(('Import', key, value))
    if summary.get('cleaning'):
        for key, value in summary['cleaning'].items():
            if isinstance(value, list):
                value = ', '.join(str(v) for v in value)
            rows.append(('Cleaning', key, value))
    if summary.get('area_statistics'):
        for key, value in summary['area_statistics'].items():
            rows.append(('Areas', key, value))
    for key, value in summary['map'].items():
        rows.append(('Map', key, value))
    return rows


def generate_xlsx_report(result, output_path: Path) -> Optional[Path]:
    """
    Generate an Excel summary of an import.

    Args:
        result: ImportResult of the run
        output_path: Directory where the workbook should be saved

    Returns:
        Path to generated XLSX file, or None if generation fails
    """
    try:
        summary = result.to_dict()
        wb = Workbook()

        # Summary sheet
        ws = wb.active
        ws.title = "Summary"
        ws.append(['Section', 'Metric', 'Value'])
        _style_header(ws, 3)
        for section, metric, value in build_summary_rows(summary):
            if value is None:
                value = ''
            elif not isinstance(value, (int, float, str, bool)):
                value = str(value)
            ws.append([section, metric, value])
        _set_widths(ws, [14, 28, 40])

        # Areas sheet
        ws = wb.create_sheet("Areas")
        ws.append(['Area', 'Size', 'Categories', 'Number of categories'])
        _style_header(ws, 4)
        n_areas = 0
        for primitive in result.vector_map.primitives['area']:
            ws.append([primitive.area_id, primitive.geometry.area,
                       primitive.cats_text(), len(primitive.cats)])
            current_row = ws.max_row
            fill = None
            if len(primitive.cats) == 0:
                fill = NOCAT_FILL
            elif len(primitive.cats) > 2 or any(f == result.context.overlap_field
                                                for f, _ in primitive.cats):
                fill = OVERLAP_FILL
            if fill is not None:
                for col_num in range(1, 5):
                    ws.cell(row=current_row, column=col_num).fill = fill
            n_areas += 1
        _set_widths(ws, [10, 18, 40, 22])

        # Messages sheet
        ws = wb.create_sheet("Messages")
        ws.append(['Message'])
        _style_header(ws, 1)
        for message in summary['warnings']:
            ws.append([message])
        _set_widths(ws, [100])

        xlsx_path = Path(output_path) / f"{result.vector_map.name}_summary.xlsx"
        wb.save(xlsx_path)
        logger.info(f"✓ XLSX report saved: {xlsx_path.name} ({n_areas} areas)")

        return xlsx_path

    except Exception as e:
        logger.error(f"Failed to generate XLSX report: {e}", exc_info=True)
        return None
