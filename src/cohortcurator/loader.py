import typing

import pandas as pd


def load_template_grid(workbook_path: str, sheet_name: typing.Union[int, str] = 0) -> list[list[str]]:
    """
    Read one worksheet into a grid of strings:
      - no header inference, every row (header rows included) is data
      - every cell read as text; blank cells become ""
      - numbers keep the text pandas gives them (PMIDs stay as written)
    """
    df = pd.read_excel(
        workbook_path,
        sheet_name=sheet_name,
        header=None,
        dtype=str,
        keep_default_na=False,
        engine="openpyxl",
    )
    return [["" if pd.isna(value) else str(value) for value in row] for row in df.itertuples(index=False)]
