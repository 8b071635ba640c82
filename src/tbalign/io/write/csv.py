"""Module to write analysis tables to CSV."""

import os

__all__ = ["CSVWriter"]


class CSVWriter:
    """Writes rows of scalars to a CSV file.

    The header is built from the keys of the first row appended. Every
    subsequent row must provide exactly the same keys.

    Typical configuration should look like:

    .. code-block:: yaml

        efficiency:
          file_name: efficiency.csv
          overwrite: true
    """

    def __init__(self, file_name="output.csv", overwrite=False):
        """Initialize the basics of the output file.

        Parameters
        ----------
        file_name : str, default 'output.csv'
            Name of the output CSV file
        overwrite : bool, default False
            If True, overwrite the output file if it already exists
        """
        if not overwrite and os.path.isfile(file_name):
            raise FileExistsError(f"File with name {file_name} already exists.")

        self.file_name = file_name
        self.result_keys = None

    def create(self, result_blob):
        """Initialize the header of the CSV file, record the keys to be stored.

        Parameters
        ----------
        result_blob : dict
            First row to be written to the file
        """
        self.result_keys = list(result_blob.keys())
        with open(self.file_name, "w", encoding="utf-8") as out_file:
            out_file.write(",".join(self.result_keys) + "\n")

    def append(self, result_blob):
        """Append one row to the CSV file.

        Parameters
        ----------
        result_blob : dict
            Row to be written to the file
        """
        if self.result_keys is None:
            self.create(result_blob)

        elif list(result_blob.keys()) != self.result_keys:
            missing = set(self.result_keys).difference(result_blob.keys())
            excess = set(result_blob.keys()).difference(self.result_keys)
            raise AssertionError(
                "The keys of this row do not match the CSV header. "
                f"Missing keys: {sorted(missing)}, new keys: {sorted(excess)}"
            )

        with open(self.file_name, "a", encoding="utf-8") as out_file:
            result_str = ",".join([str(result_blob[k]) for k in self.result_keys])
            out_file.write(result_str + "\n")
