"""Document intake package."""

from bookkeeper.services.intake.document_intake import DocumentIntake, split_data_url

__all__ = ["DocumentIntake", "split_data_url"]
