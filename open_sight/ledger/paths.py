import logging
from pathlib import Path


def handle_output_path(output_path: Path, overwrite: bool) -> None:
    """
    Clears the way for a fresh output file.
    Overwrite removes an existing file; otherwise it is moved aside to
    '<stem>_<n><suffix>' using the first free n.
    """
    if not output_path.exists():
        return

    if overwrite:
        logging.info(f"Overwriting existing file: {output_path}")
        output_path.unlink()
        return

    counter = 1
    new_path = output_path.with_name(f"{output_path.stem}_{counter}{output_path.suffix}")
    while new_path.exists():
        counter += 1
        new_path = output_path.with_name(f"{output_path.stem}_{counter}{output_path.suffix}")

    output_path.rename(new_path)
    logging.info(f"Moved old {output_path} to {new_path}")
