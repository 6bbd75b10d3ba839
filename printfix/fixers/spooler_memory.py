"""
Error 0x00000008 — ERROR_NOT_ENOUGH_MEMORY from the Spooler.

Shows up when the queue is clogged with stuck jobs or the system drive is
nearly full. Diagnose, reset the Spooler, then clear temp folders.
"""

from printfix.fixers.base import BaseFixer, FixContext
from printfix.fixers.spooler import SpoolerFixer
from printfix.models import FixResult


_DIAG_SCRIPT = r"""
$spoolPath = "$env:SystemRoot\System32\spool\PRINTERS"
$files = @(Get-ChildItem -Path $spoolPath -Recurse -ErrorAction SilentlyContinue)
$totalSizeMB = [Math]::Round((($files | Measure-Object -Property Length -Sum).Sum) / 1MB, 2)
Write-Output "[INFO] Queue files: $($files.Count), total size: $totalSizeMB MB"

$drive = Split-Path $env:SystemRoot -Qualifier
$disk = Get-PSDrive -Name ($drive.TrimEnd(':')) -ErrorAction SilentlyContinue
if ($disk) {
    $freeGB = [Math]::Round($disk.Free / 1GB, 2)
    Write-Output "[INFO] Free space on ${drive}: $freeGB GB"
    if ($freeGB -lt 1) {
        Write-Output "[WARN] Disk space critically low; this alone can cause 0x00000008."
    }
}

$spoolerProc = Get-Process -Name spoolsv -ErrorAction SilentlyContinue
if ($spoolerProc) {
    $memMB = [Math]::Round($spoolerProc.WorkingSet64 / 1MB, 2)
    Write-Output "[INFO] Spooler process memory (spoolsv.exe): $memMB MB"
    if ($memMB -gt 500) {
        Write-Output "[WARN] Spooler is using a lot of memory; forcing a reset."
    }
}
"""

_CLEANUP_SCRIPT = r"""
Write-Output "[INFO] Clearing Windows temp folders (helps when space is low)..."
$tempPaths = @($env:TEMP, $env:TMP, "$env:SystemRoot\Temp") | Select-Object -Unique
foreach ($p in $tempPaths) {
    if ($p -and (Test-Path $p)) {
        Get-ChildItem -Path $p -Recurse -ErrorAction SilentlyContinue |
            Where-Object { -not $_.PSIsContainer } |
            Remove-Item -Force -ErrorAction SilentlyContinue
    }
}
Write-Output "[OK] Temp folders cleared"
"""


class SpoolerMemoryFixer(BaseFixer):
    id = "spooler_memory_08"
    name = "Error 0x00000008 (Spooler memory)"
    description = (
        "Diagnoses Spooler memory exhaustion: reports queue size, free disk "
        "space and spoolsv memory, clears stuck jobs, restarts the Spooler "
        "and empties temp folders."
    )
    target_codes = ("0x00000008", "0x8", "ERROR_NOT_ENOUGH_MEMORY")

    def __init__(self) -> None:
        self._spooler = SpoolerFixer()

    async def run(self, ctx: FixContext) -> FixResult:
        ctx.step("Diagnosing Spooler memory...")
        await ctx.run(_DIAG_SCRIPT)

        ctx.step("Clearing the queue and restarting Spooler...")
        await ctx.delegate(self._spooler)

        ctx.step("Cleaning temporary files...")
        await ctx.run(_CLEANUP_SCRIPT)

        if ctx.all_succeeded:
            return FixResult.ok("0x00000008 fix applied: queue cleared, temp files removed", ctx.steps)
        return FixResult.warn(ctx.partial_summary("0x00000008 fix"), ctx.steps)
