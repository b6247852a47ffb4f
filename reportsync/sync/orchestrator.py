"""Iterate task types x active accounts and aggregate run results"""

from typing import Dict, Iterable, List, Optional

from reportsync.core.exceptions import ConfigurationError, ValidationError
from reportsync.logging_config.logger import setup_logger
from reportsync.sync.fanout import Directory
from reportsync.sync.models import (
    AccountRunResult,
    RunOptions,
    SyncMode,
    SyncReport,
    TaskReport,
    TaskSummary,
)
from reportsync.sync.runner import SyncRunner
from reportsync.sync.tasks import TaskDescriptor, TaskRegistry

logger = setup_logger(__name__)


class Orchestrator:
    def __init__(self, registry: TaskRegistry, directory: Directory, runner: SyncRunner):
        self.registry = registry
        self.directory = directory
        self.runner = runner

    def list_tasks(self, mode: Optional[SyncMode] = None) -> List[Dict[str, str]]:
        return self.registry.describe(mode)

    def resolve(self, task_type, mode: SyncMode = SyncMode.INCREMENTAL) -> TaskDescriptor:
        """Look up a task and check it can run in mode; raises ConfigurationError"""
        descriptor = self.registry.get(task_type)
        if not descriptor.supports(mode):
            raise ConfigurationError(
                f"Task {descriptor.task_type.value} does not support {mode.value} mode"
            )
        return descriptor

    def run_task_for_account(
        self,
        task_type,
        account_id: str,
        mode: SyncMode = SyncMode.INCREMENTAL,
        options: Optional[RunOptions] = None,
    ) -> AccountRunResult:
        descriptor = self.resolve(task_type, mode)
        account = self.directory.get_account(account_id)
        if account is None:
            raise ValidationError(f"Account not found or inactive: {account_id}")
        return self.runner.run(account, descriptor, mode, options)

    def run_task(
        self,
        task_type,
        mode: SyncMode = SyncMode.INCREMENTAL,
        options: Optional[RunOptions] = None,
    ) -> TaskReport:
        """
        Run one task type for every active account

        Args:
            task_type: TaskType or its string value
            mode: incremental or full
            options: Run options passed to every account run

        Returns:
            TaskReport with per-account results and {success_count, fail_count, total_records}
        """
        descriptor = self.resolve(task_type, mode)
        task = descriptor.task_type.value
        report = TaskReport(task_type=task, description=descriptor.description, mode=mode)

        accounts = self.directory.get_active_accounts()
        report.summary.account_count = len(accounts)
        if not accounts:
            report.summary.message = "No active accounts"
            logger.info(f"[{task}] no active accounts, nothing to sync")
            return report

        if descriptor.global_scope and len(accounts) > 1:
            # Shared reference data: one account's credentials fetch it for everyone
            logger.info(f"[{task}] global task, running once with account {accounts[0].id}")
            accounts = accounts[:1]

        logger.info(f"Starting {task} ({mode.value}) for {len(accounts)} account(s)")
        for account in accounts:
            try:
                result = self.runner.run(account, descriptor, mode, options)
            except Exception as e:
                logger.error(f"[{task}] account {account.id} failed: {e}", exc_info=True)
                result = AccountRunResult(
                    account_id=account.id,
                    task_type=task,
                    account_name=account.name,
                    error=str(e),
                )
            report.results.append(result)
            report.summary.add(result)

        s = report.summary
        logger.info(
            f"✅ {task} completed: {s.success_count} succeeded, {s.fail_count} failed, "
            f"{s.total_records} records"
        )
        return report

    def run_all(
        self,
        mode: SyncMode = SyncMode.INCREMENTAL,
        options: Optional[RunOptions] = None,
        task_types: Optional[Iterable] = None,
    ) -> SyncReport:
        """Run every task type registered for mode; never raises"""
        report = SyncReport(mode=mode)
        types = list(task_types) if task_types is not None else self.registry.task_types(mode)

        for task_type in types:
            try:
                task_report = self.run_task(task_type, mode, options)
            except Exception as e:
                name = getattr(task_type, "value", str(task_type))
                logger.error(f"Task {name} failed: {e}", exc_info=True)
                task_report = TaskReport(
                    task_type=name,
                    description="",
                    mode=mode,
                    summary=TaskSummary(fail_count=1, message=str(e)),
                )
            report.task_reports.append(task_report)

        logger.info(
            f"✅ Sync run ({mode.value}) finished: {report.success_count} succeeded, "
            f"{report.fail_count} failed, {report.total_records} records"
        )
        return report
