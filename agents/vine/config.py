"""Fiscal settings for the Vine ledger.

Provides the EÜR settings with sensible defaults, environment-based
overrides and a dict form for the local store.
"""

import os
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict

from .dto import quantize_money


def _env_bool(value: str) -> bool:
    return value.strip().lower() in {"1", "true", "yes", "on"}


@dataclass
class FiscalSettings:
    """Settings for the profit statement and document generation.

    Supports environment overrides with pattern: <PREFIX>_<SETTING>

    ``use_fair_value_for_income`` (method A on Teilwert basis) and
    ``etv_in_out_method`` (method B) are mutually exclusive.
    """

    use_fair_value_for_income: bool = False
    etv_in_out_method: bool = False

    home_office_flat_rate: Decimal = Decimal("1260.00")

    # Streuartikel threshold (ETV below limit -> no document, no EÜR)
    minor_value_limit_active: bool = False
    minor_value_limit: Decimal = Decimal("11.90")

    # "<n>d" added to the order date when no explicit withdrawal date is set
    default_withdrawal_delay: str = "0d"

    ignore_zero_etv_products: bool = False
    use_alternate_valuation: bool = False

    def __post_init__(self) -> None:
        if self.use_fair_value_for_income and self.etv_in_out_method:
            raise ValueError(
                "use_fair_value_for_income and etv_in_out_method are mutually exclusive"
            )
        self.home_office_flat_rate = quantize_money(self.home_office_flat_rate)
        self.minor_value_limit = quantize_money(self.minor_value_limit)

    @property
    def method(self) -> str:
        return "B" if self.etv_in_out_method else "A"

    def select(self, *, use_fair_value_for_income: bool | None = None,
               etv_in_out_method: bool | None = None) -> "FiscalSettings":
        """Toggle one of the exclusive method flags; enabling one clears the other.

        Args:
            use_fair_value_for_income: New value for the fair-value flag
            etv_in_out_method: New value for the ETV in/out flag

        Returns:
            The same instance, updated in place
        """
        if use_fair_value_for_income is not None and etv_in_out_method is not None:
            if use_fair_value_for_income and etv_in_out_method:
                raise ValueError("cannot enable both accounting methods")
        if use_fair_value_for_income is not None:
            self.use_fair_value_for_income = use_fair_value_for_income
            if use_fair_value_for_income:
                self.etv_in_out_method = False
        if etv_in_out_method is not None:
            self.etv_in_out_method = etv_in_out_method
            if etv_in_out_method:
                self.use_fair_value_for_income = False
        return self

    @classmethod
    def from_env(cls, prefix: str = "VINE") -> "FiscalSettings":
        """Create settings with environment overrides.

        Args:
            prefix: Environment variable prefix

        Returns:
            Configured instance
        """
        config = cls()

        use_fair_value = os.getenv(f"{prefix}_USE_FAIR_VALUE_FOR_INCOME")
        etv_in_out = os.getenv(f"{prefix}_ETV_IN_OUT_METHOD")
        config.select(
            use_fair_value_for_income=_env_bool(use_fair_value) if use_fair_value is not None else None,
            etv_in_out_method=_env_bool(etv_in_out) if etv_in_out is not None else None,
        )

        config.home_office_flat_rate = quantize_money(
            os.getenv(f"{prefix}_HOME_OFFICE_FLAT_RATE", config.home_office_flat_rate)
        )
        config.minor_value_limit_active = _env_bool(
            os.getenv(f"{prefix}_MINOR_VALUE_LIMIT_ACTIVE", str(config.minor_value_limit_active))
        )
        config.minor_value_limit = quantize_money(
            os.getenv(f"{prefix}_MINOR_VALUE_LIMIT", config.minor_value_limit)
        )
        config.default_withdrawal_delay = os.getenv(
            f"{prefix}_DEFAULT_WITHDRAWAL_DELAY", config.default_withdrawal_delay
        )
        config.ignore_zero_etv_products = _env_bool(
            os.getenv(f"{prefix}_IGNORE_ZERO_ETV", str(config.ignore_zero_etv_products))
        )
        config.use_alternate_valuation = _env_bool(
            os.getenv(f"{prefix}_USE_ALTERNATE_VALUATION", str(config.use_alternate_valuation))
        )
        return config

    def to_dict(self) -> Dict[str, Any]:
        """Dictionary form as kept in the local store (``vineApp_euerSettings``)."""
        return {
            "useTeilwertForIncome": self.use_fair_value_for_income,
            "euerMethodETVInOutTeilwertEntnahme": self.etv_in_out_method,
            "homeOfficePauschale": float(self.home_office_flat_rate),
            "streuArtikelLimitActive": self.minor_value_limit_active,
            "streuArtikelLimitValue": float(self.minor_value_limit),
            "defaultPrivatentnahmeDelay": self.default_withdrawal_delay,
            "ignoreETVZeroProducts": self.ignore_zero_etv_products,
            "useTeilwertV2": self.use_alternate_valuation,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any] | None) -> "FiscalSettings":
        """Inverse of ``to_dict``; missing keys keep their defaults.

        A stored state with both method flags set resolves to method B.
        """
        defaults = cls()
        data = data or {}
        etv_in_out = bool(data.get("euerMethodETVInOutTeilwertEntnahme", defaults.etv_in_out_method))
        use_fair_value = bool(data.get("useTeilwertForIncome", defaults.use_fair_value_for_income))
        return cls(
            use_fair_value_for_income=use_fair_value and not etv_in_out,
            etv_in_out_method=etv_in_out,
            home_office_flat_rate=quantize_money(
                data.get("homeOfficePauschale", defaults.home_office_flat_rate)
            ),
            minor_value_limit_active=bool(
                data.get("streuArtikelLimitActive", defaults.minor_value_limit_active)
            ),
            minor_value_limit=quantize_money(
                data.get("streuArtikelLimitValue", defaults.minor_value_limit)
            ),
            default_withdrawal_delay=str(
                data.get("defaultPrivatentnahmeDelay", defaults.default_withdrawal_delay)
            ),
            ignore_zero_etv_products=bool(
                data.get("ignoreETVZeroProducts", defaults.ignore_zero_etv_products)
            ),
            use_alternate_valuation=bool(data.get("useTeilwertV2", defaults.use_alternate_valuation)),
        )
