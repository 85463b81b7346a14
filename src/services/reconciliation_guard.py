"""
Client reconciliation guard.
Checks that a file re-selected after a reload is the one the session was opened for.
"""
from src.core.exceptions import FileMismatchException


def ensure_same_file(
    session_id: str,
    original_name: str,
    original_size: int,
    selected_name: str,
    selected_size: int
) -> None:
    """
    Compare the re-selected file against the values recorded at session creation.

    Args:
        session_id: Session being resumed
        original_name: File name recorded at creation
        original_size: File size recorded at creation
        selected_name: Name of the newly selected file
        selected_size: Size of the newly selected file

    Raises:
        FileMismatchException: If name or size differ
    """
    if original_name != selected_name or original_size != selected_size:
        raise FileMismatchException(
            session_id=session_id,
            original_name=original_name,
            original_size=original_size,
            selected_name=selected_name,
            selected_size=selected_size
        )
