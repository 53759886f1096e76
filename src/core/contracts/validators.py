"""
JSON Schema Contract Validators

Validation of encoded fee settings against formal JSON Schema contracts.
Uses the jsonschema library (Draft 2020-12).

Schemas (src/core/contracts/schema/):
- entrance_rate_fee.json
- exit_rate_fee.json
- management_fee.json
- performance_fee.json
- min_shares_supply_fee.json
"""

import json
from pathlib import Path
from typing import Any, Dict, Mapping, Type, Union

import jsonschema
from jsonschema import Draft202012Validator, ValidationError

from src.core.errors import ConfigurationError

EncodedSettings = Union[str, bytes, bytearray, Mapping[str, Any]]


# =============================================================================
# SCHEMA LOADER
# =============================================================================


class SchemaLoader:
    """
    JSON Schema file loader.

    Schemas ship next to this module, in the schema/ directory.
    """

    def __init__(self, schema_dir: Path | None = None):
        self._schema_dir = schema_dir or Path(__file__).parent / "schema"
        if not self._schema_dir.exists():
            raise RuntimeError(f"Schema directory not found: {self._schema_dir}")

        # Loaded schema cache
        self._schemas: Dict[str, Dict[str, Any]] = {}

    def load_schema(self, schema_name: str) -> Dict[str, Any]:
        """
        Load a JSON Schema file.

        Args:
            schema_name: Schema name without extension (e.g. 'management_fee')

        Returns:
            Loaded schema as dict

        Raises:
            FileNotFoundError: If the schema file does not exist
            ValueError: If the file is not a valid JSON Schema
        """
        if schema_name in self._schemas:
            return self._schemas[schema_name]

        schema_path = self._schema_dir / f"{schema_name}.json"
        if not schema_path.exists():
            raise FileNotFoundError(f"Schema not found: {schema_path}")

        with open(schema_path, "r", encoding="utf-8") as f:
            schema = json.load(f)

        # Meta-validation of the schema itself
        try:
            Draft202012Validator.check_schema(schema)
        except jsonschema.SchemaError as e:
            raise ValueError(f"Invalid JSON Schema in {schema_name}.json: {e}") from e

        self._schemas[schema_name] = schema
        return schema


# Global loader instance
_SCHEMA_LOADER = SchemaLoader()


# =============================================================================
# CONTRACT VALIDATORS
# =============================================================================


class ContractValidator:
    """
    Base validator for settings contracts.

    Wraps validation of decoded data against one JSON Schema.
    """

    def __init__(self, schema_name: str):
        """
        Args:
            schema_name: Schema to validate against
        """
        self.schema_name = schema_name
        self.schema = _SCHEMA_LOADER.load_schema(schema_name)
        self.validator = Draft202012Validator(self.schema)

    def validate(self, data: Dict[str, Any]) -> None:
        """
        Validate data against the schema.

        Raises:
            ValidationError: If data does not match the schema
        """
        self.validator.validate(data)

    def is_valid(self, data: Dict[str, Any]) -> bool:
        return self.validator.is_valid(data)

    def iter_errors(self, data: Dict[str, Any]):
        return self.validator.iter_errors(data)


class EntranceRateFeeValidator(ContractValidator):
    def __init__(self):
        super().__init__("entrance_rate_fee")


class ExitRateFeeValidator(ContractValidator):
    def __init__(self):
        super().__init__("exit_rate_fee")


class ManagementFeeValidator(ContractValidator):
    def __init__(self):
        super().__init__("management_fee")


class PerformanceFeeValidator(ContractValidator):
    def __init__(self):
        super().__init__("performance_fee")


class MinSharesSupplyFeeValidator(ContractValidator):
    def __init__(self):
        super().__init__("min_shares_supply_fee")


CONTRACT_VALIDATORS: Dict[str, Type[ContractValidator]] = {
    "entrance_rate_fee": EntranceRateFeeValidator,
    "exit_rate_fee": ExitRateFeeValidator,
    "management_fee": ManagementFeeValidator,
    "performance_fee": PerformanceFeeValidator,
    "min_shares_supply_fee": MinSharesSupplyFeeValidator,
}

# Validator instance cache
_VALIDATORS: Dict[str, ContractValidator] = {}


def get_validator(schema_name: str) -> ContractValidator:
    """
    Validator for a settings contract, built once per contract.

    Raises:
        ConfigurationError: If no validator is registered for the contract
    """
    validator = _VALIDATORS.get(schema_name)
    if validator is None:
        validator_cls = CONTRACT_VALIDATORS.get(schema_name)
        if validator_cls is None:
            raise ConfigurationError("unknown settings contract", details={"schema": schema_name})
        validator = _VALIDATORS[schema_name] = validator_cls()
    return validator


# =============================================================================
# DECODING
# =============================================================================


def decode_settings(encoded: EncodedSettings, schema_name: str) -> Dict[str, Any]:
    """
    Decode fee settings and validate them against their contract.

    Args:
        encoded: JSON text/bytes or an already decoded mapping
        schema_name: Contract the settings must satisfy

    Returns:
        Decoded settings dict

    Raises:
        ConfigurationError: On an unknown contract, malformed JSON, a
            non-object payload or a contract violation
    """
    if isinstance(encoded, (str, bytes, bytearray)):
        try:
            data = json.loads(encoded)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise ConfigurationError(
                "settings are not valid JSON", details={"schema": schema_name, "error": str(e)}
            ) from e
    else:
        data = dict(encoded)

    if not isinstance(data, dict):
        raise ConfigurationError(
            "settings must decode to an object", details={"schema": schema_name}
        )

    errors = sorted(get_validator(schema_name).iter_errors(data), key=lambda e: list(e.path))
    if errors:
        first: ValidationError = errors[0]
        raise ConfigurationError(
            "settings violate contract",
            details={
                "schema": schema_name,
                "path": "/".join(str(p) for p in first.path),
                "error": first.message,
            },
        )
    return data
