"""Balance alert monitor - snapshot-diff alerting on account balances"""

import logging
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional

from pydantic import TypeAdapter

from spend_sentinel.domain.models import (
    AccountSnapshot,
    AlertConfig,
    AlertSeverity,
    AlertStats,
    BalanceAlert,
    BalanceAlertType,
    new_id,
)
from spend_sentinel.services.base import PersistentComponent, now_or

logger = logging.getLogger(__name__)

SEVERITY = {
    BalanceAlertType.LOW_BALANCE: AlertSeverity.WARNING,
    BalanceAlertType.OVERDRAFT_WARNING: AlertSeverity.CRITICAL,
    BalanceAlertType.LARGE_WITHDRAWAL: AlertSeverity.WARNING,
    BalanceAlertType.BALANCE_INCREASE: AlertSeverity.INFO,
}

_CONFIGS = TypeAdapter(Dict[str, AlertConfig])
_ALERTS = TypeAdapter(List[BalanceAlert])
_BALANCES = TypeAdapter(Dict[str, float])
_THRESHOLDS = TypeAdapter(Dict[BalanceAlertType, float])


class BalanceAlertMonitor(PersistentComponent):
    """
    Compares each account snapshot against thresholds and the previous snapshot.

    Every (account, alert type) pair is deduplicated for ``alert_dedup_hours``
    against unacknowledged alerts.
    """

    document_name = "balance_alerts"

    def _restore(self, document):
        self.thresholds: Dict[BalanceAlertType, float] = {
            BalanceAlertType.LOW_BALANCE: self.config.low_balance_threshold,
            BalanceAlertType.OVERDRAFT_WARNING: self.config.overdraft_buffer,
            BalanceAlertType.LARGE_WITHDRAWAL: self.config.large_withdrawal_threshold,
            BalanceAlertType.BALANCE_INCREASE: self.config.large_deposit_threshold,
        }
        self.thresholds.update(_THRESHOLDS.validate_python(document.get("thresholds", {})))
        self.configs: Dict[str, AlertConfig] = _CONFIGS.validate_python(document.get("configs", {}))
        self.alerts: List[BalanceAlert] = _ALERTS.validate_python(document.get("alerts", []))
        self.last_balances: Dict[str, float] = _BALANCES.validate_python(document.get("last_balances", {}))

    def _snapshot(self):
        self.alerts = self.alerts[-self.config.max_alert_history:]
        return {
            "thresholds": _THRESHOLDS.dump_python(self.thresholds, mode="json"),
            "configs": _CONFIGS.dump_python(self.configs, mode="json"),
            "alerts": _ALERTS.dump_python(self.alerts, mode="json"),
            "last_balances": _BALANCES.dump_python(self.last_balances, mode="json"),
        }

    # ------------------------------------------------------------------
    # Thresholds and per-account configuration
    # ------------------------------------------------------------------

    def set_thresholds(
        self,
        low_balance: Optional[float] = None,
        large_withdrawal: Optional[float] = None,
        large_deposit: Optional[float] = None,
        overdraft_buffer: Optional[float] = None,
    ) -> Dict[BalanceAlertType, float]:
        for alert_type, value in (
            (BalanceAlertType.LOW_BALANCE, low_balance),
            (BalanceAlertType.LARGE_WITHDRAWAL, large_withdrawal),
            (BalanceAlertType.BALANCE_INCREASE, large_deposit),
            (BalanceAlertType.OVERDRAFT_WARNING, overdraft_buffer),
        ):
            if value is not None:
                self.thresholds[alert_type] = value
        self._persist()
        return dict(self.thresholds)

    def create_config(
        self,
        account_id: str,
        alert_type: BalanceAlertType,
        threshold: Optional[float] = None,
        enabled: bool = True,
    ) -> AlertConfig:
        """Override (or disable) one alert type for one account; replaces any earlier override"""
        alert_type = BalanceAlertType(alert_type)
        for existing in list(self.configs.values()):
            if existing.account_id == account_id and existing.type == alert_type:
                del self.configs[existing.id]

        config = AlertConfig(
            id=new_id("acfg"),
            account_id=account_id,
            type=alert_type,
            threshold=threshold if threshold is not None else self.thresholds[alert_type],
            enabled=enabled,
            created_at=datetime.now(),
        )
        self.configs[config.id] = config
        self._persist()
        self.observer.on_created(config)
        return config

    def get_configs(self, account_id: Optional[str] = None) -> List[AlertConfig]:
        return [c for c in self.configs.values() if account_id is None or c.account_id == account_id]

    def delete_config(self, config_id: str) -> bool:
        if self.configs.pop(config_id, None) is None:
            return False
        self._persist()
        self.observer.on_deleted(config_id)
        return True

    def _threshold_for(self, account_id: str, alert_type: BalanceAlertType) -> Optional[float]:
        """Effective threshold, or None when the account disabled this alert type"""
        for config in self.configs.values():
            if config.account_id == account_id and config.type == alert_type:
                if not config.enabled:
                    return None
                if config.threshold is not None:
                    return config.threshold
        return self.thresholds[alert_type]

    # ------------------------------------------------------------------
    # Checks
    # ------------------------------------------------------------------

    def check_accounts(self, accounts: Iterable[AccountSnapshot], now: Optional[datetime] = None) -> List[BalanceAlert]:
        """
        Evaluate each account snapshot.

        Checks:
        - low balance: balance below the low-balance threshold
        - overdraft proximity: available balance below the overdraft buffer
        - large withdrawal: balance dropped by at least the threshold since last check
        - balance increase: balance rose by at least the deposit threshold (informational)
        """
        now = now_or(now)
        alerts: List[BalanceAlert] = []

        for account in accounts:
            candidates = []

            low = self._threshold_for(account.account_id, BalanceAlertType.LOW_BALANCE)
            if low is not None and account.balance < low:
                candidates.append(
                    (BalanceAlertType.LOW_BALANCE, low, f"{account.name} balance {account.balance:.2f} is below {low:.2f}")
                )

            buffer = self._threshold_for(account.account_id, BalanceAlertType.OVERDRAFT_WARNING)
            available = account.available_balance if account.available_balance is not None else account.balance
            if buffer is not None and available < buffer:
                candidates.append(
                    (
                        BalanceAlertType.OVERDRAFT_WARNING,
                        buffer,
                        f"{account.name} available balance {available:.2f} is close to overdraft",
                    )
                )

            previous = self.last_balances.get(account.account_id)
            if previous is not None:
                delta = account.balance - previous
                withdrawal = self._threshold_for(account.account_id, BalanceAlertType.LARGE_WITHDRAWAL)
                if withdrawal is not None and -delta >= withdrawal:
                    candidates.append(
                        (
                            BalanceAlertType.LARGE_WITHDRAWAL,
                            withdrawal,
                            f"{account.name} balance dropped by {-delta:.2f}",
                        )
                    )
                deposit = self._threshold_for(account.account_id, BalanceAlertType.BALANCE_INCREASE)
                if deposit is not None and delta >= deposit:
                    candidates.append(
                        (
                            BalanceAlertType.BALANCE_INCREASE,
                            deposit,
                            f"{account.name} balance increased by {delta:.2f}",
                        )
                    )

            for alert_type, threshold, message in candidates:
                if self._is_duplicate(account.account_id, alert_type, now):
                    continue
                alert = BalanceAlert(
                    id=new_id("bal"),
                    account_id=account.account_id,
                    account_name=account.name,
                    type=alert_type,
                    severity=SEVERITY[alert_type],
                    message=message,
                    balance=account.balance,
                    threshold=threshold,
                    created_at=now,
                )
                self.alerts.append(alert)
                alerts.append(alert)

            self.last_balances[account.account_id] = account.balance

        self._persist()
        for alert in alerts:
            self.observer.on_alert(alert)
        return alerts

    def _is_duplicate(self, account_id: str, alert_type: BalanceAlertType, now: datetime) -> bool:
        window = timedelta(hours=self.config.alert_dedup_hours)
        return any(
            a.account_id == account_id and a.type == alert_type and not a.acknowledged and now - a.created_at < window
            for a in self.alerts
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_active_alerts(self) -> List[BalanceAlert]:
        return sorted((a for a in self.alerts if not a.acknowledged), key=lambda a: a.created_at, reverse=True)

    def acknowledge_alert(self, alert_id: str) -> bool:
        for alert in self.alerts:
            if alert.id == alert_id:
                alert.acknowledged = True
                self._persist()
                return True
        return False

    def get_stats(self, now: Optional[datetime] = None) -> AlertStats:
        now = now_or(now)
        by_type: Dict[str, int] = {}
        for alert in self.alerts:
            by_type[alert.type.value] = by_type.get(alert.type.value, 0) + 1
        return AlertStats(
            total=len(self.alerts),
            active=sum(1 for a in self.alerts if not a.acknowledged),
            last_24h=sum(1 for a in self.alerts if now - a.created_at < timedelta(hours=24)),
            by_type=by_type,
        )
