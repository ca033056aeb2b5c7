import os

import config


class FilenameGenerationError(Exception):
    """The OS entropy source could not produce random bytes."""


def get_extension(original_filename: str) -> str:
    """Return the final extension of the file's base name, dot included.

    "a.b.tar.gz" gives ".gz"; dotfiles such as ".bashrc" and names without a
    dot give "".
    """
    if not original_filename:
        return ""
    base_name = original_filename.replace("\\", "/").rsplit("/", 1)[-1]
    _, extension = os.path.splitext(base_name)
    return extension


def generate_filename(original_filename: str) -> str:
    """Random hex name that keeps the original extension."""
    try:
        random_bytes = os.urandom(config.RANDOM_NAME_BYTES)
    except (OSError, NotImplementedError) as e:
        raise FilenameGenerationError(str(e)) from e
    return random_bytes.hex() + get_extension(original_filename)
