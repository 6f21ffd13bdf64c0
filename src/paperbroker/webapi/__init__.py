"""HTTP interface for the paper brokerage."""
