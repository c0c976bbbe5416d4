# curriculum/utils/excel_styles.py
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side

THIN_BORDER = Border(
    left=Side(style='thin'),
    right=Side(style='thin'),
    top=Side(style='thin'),
    bottom=Side(style='thin')
)


class ExcelStyles:
    @staticmethod
    def get_header_style():
        return {
            'font': Font(bold=True, size=11),
            'fill': PatternFill(start_color="CCE5FF", end_color="CCE5FF", fill_type="solid"),
            'border': THIN_BORDER,
            'alignment': Alignment(wrap_text=True, vertical='center'),
        }

    @staticmethod
    def get_data_style():
        return {
            'font': Font(size=10),
            'border': THIN_BORDER,
            'alignment': Alignment(wrap_text=True, vertical='top'),
        }

    @staticmethod
    def get_status_fill(achieved):
        color = "C8E6C9" if achieved else "FFCDD2"
        return PatternFill(start_color=color, end_color=color, fill_type="solid")

    @staticmethod
    def apply_styles(cell, styles):
        for key, value in styles.items():
            setattr(cell, key, value)
