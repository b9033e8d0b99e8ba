import os
from typing import Iterable, Sequence

import pandas as pd

MANIFEST_COLUMNS = ["input", "output", "newlines_flattened"]


def write_manifest(results: Iterable[Sequence], outputfile: str) -> int:
    """Write a csv describing a flattening run.

    Args:
        results (Iterable[Sequence]): (input path, output path, newlines flattened) per processed file.
        outputfile (str): Path of the manifest. Overwritten if it exists.

    Returns:
        int: Number of rows written, not counting the header.
    """
    df = pd.DataFrame([tuple(row) for row in results], columns=MANIFEST_COLUMNS)
    parent = os.path.dirname(os.path.abspath(outputfile))
    os.makedirs(parent, exist_ok=True)
    df.to_csv(outputfile, index=False)
    return len(df)
