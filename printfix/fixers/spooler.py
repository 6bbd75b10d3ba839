"""
Print Spooler reset — stop, clear the queue, start.

Used on its own and as a step inside other fixers
(connection_4005, file_not_found_02, spooler_memory_08).

Runs in the Windows PowerShell process locally: CimCmdlets and the print
job cmdlets are Desktop-only.
"""

from printfix.fixers.base import BaseFixer, FixContext
from printfix.models import FixResult


_STOP_SCRIPT = r"""
$ErrorActionPreference = 'Continue'

# Purge jobs through WMI first; network printer jobs are not spool files
try {
    $jobs = Get-CimInstance -ClassName Win32_PrintJob -ErrorAction SilentlyContinue
    if ($jobs) {
        $count = ($jobs | Measure-Object).Count
        $jobs | Remove-CimInstance -ErrorAction SilentlyContinue
        Write-Output "[OK] Removed print jobs via WMI: $count"
    } else {
        Write-Output "[INFO] No active WMI print jobs"
    }
} catch {
    Write-Output "[WARN] Could not purge jobs via WMI: $_"
}

try {
    Stop-Service -Name spooler -Force -ErrorAction Stop
    Start-Sleep -Seconds 1
    Write-Output "[OK] Spooler service stopped"
} catch {
    Write-Output "[WARN] Stop-Service failed, killing spoolsv: $_"
    Get-Process -Name spoolsv -ErrorAction SilentlyContinue | Stop-Process -Force -ErrorAction SilentlyContinue
    Start-Sleep -Seconds 1
}
"""

_CLEAR_SCRIPT = r"""
$spoolPath = "$env:SystemRoot\System32\spool\PRINTERS"
$files = Get-ChildItem -Path $spoolPath -Include *.SHD,*.SPL -Recurse -ErrorAction SilentlyContinue
$fileCount = ($files | Measure-Object).Count
$files | Remove-Item -Force -ErrorAction SilentlyContinue
Write-Output "[OK] Queue files removed: $fileCount"
"""

_START_SCRIPT = r"""
try {
    Start-Service -Name spooler -ErrorAction Stop
    $status = (Get-Service spooler).Status
    Write-Output "[OK] Spooler service started: $status"
} catch {
    Write-Output "[ERROR] Could not start Spooler: $_"
    exit 1
}
"""


class SpoolerFixer(BaseFixer):
    id = "spooler_reset"
    name = "Print Spooler reset"
    description = (
        "Stops the Spooler service, clears every job (spool files and WMI jobs "
        "for network printers) and starts the service again. Fixes stuck print "
        "queues and general Spooler failures."
    )
    target_codes = ("0x00000008", "0x00000006", "spooler")

    async def run(self, ctx: FixContext) -> FixResult:
        problems: list[str] = []

        # The service must be down before its queue files can be deleted
        ctx.step("Stopping the Print Spooler service...")
        stop = await ctx.run(_STOP_SCRIPT, external=True)
        if not stop.success:
            problems.append(f"stop: {stop.error}")

        ctx.step("Clearing the print queue...")
        clear = await ctx.run(_CLEAR_SCRIPT, external=True)
        if not clear.success:
            problems.append(f"clear queue: {clear.error}")

        ctx.step("Starting the Print Spooler service...")
        start = await ctx.run(_START_SCRIPT, external=True)
        if not start.success:
            return FixResult.fail(f"Spooler restart failed: {start.error}", ctx.steps)

        if problems:
            return FixResult.warn(
                "Spooler restarted, with issues: " + "; ".join(problems), ctx.steps,
            )
        return FixResult.ok("Print Spooler restarted and queue cleared", ctx.steps)
