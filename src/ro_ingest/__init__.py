"""ro-ingest — Clean, deduplicate and summarise RO opportunity spreadsheets."""

__version__ = "0.2.0"

REQUIRED_FIELDS: list[str] = ["RO_num"]
RECOMMENDED_FIELDS: list[str] = ["RO_rev", "RO_date", "CompletionPercent"]
VALUE_FIELDS: list[str] = ["OfferValue", "ContractValue"]
