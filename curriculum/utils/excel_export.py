# curriculum/utils/excel_export.py
from io import BytesIO

from openpyxl import Workbook
from openpyxl.utils import get_column_letter

from .excel_styles import ExcelStyles

XLSX_CONTENT_TYPE = 'application/vnd.openxmlformats-officedocument.spreadsheetml.sheet'


class ExcelExporter:
    """Writes tabular sheets with a styled header row into one workbook."""

    def __init__(self):
        self.wb = Workbook()
        self._first_sheet = True
        self.header_style = ExcelStyles.get_header_style()
        self.data_style = ExcelStyles.get_data_style()

    def add_sheet(self, title, headers, rows, status_column=None, max_width=60):
        if self._first_sheet:
            ws = self.wb.active
            ws.title = title
            self._first_sheet = False
        else:
            ws = self.wb.create_sheet(title=title)

        for col, header in enumerate(headers, start=1):
            ExcelStyles.apply_styles(ws.cell(row=1, column=col, value=header), self.header_style)

        widths = [len(str(h)) for h in headers]
        for row_index, row in enumerate(rows, start=2):
            for col, value in enumerate(row, start=1):
                cell = ws.cell(row=row_index, column=col, value=value)
                ExcelStyles.apply_styles(cell, self.data_style)
                if status_column is not None and col == status_column + 1:
                    cell.fill = ExcelStyles.get_status_fill(value == 'achieved')
                widths[col - 1] = max(widths[col - 1], len(str(value or '')))

        for col, width in enumerate(widths, start=1):
            ws.column_dimensions[get_column_letter(col)].width = min(max_width, width + 2)
        ws.freeze_panes = 'A2'
        return ws

    def to_bytes(self):
        buffer = BytesIO()
        self.wb.save(buffer)
        return buffer.getvalue()
