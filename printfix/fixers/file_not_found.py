r"""
Error 0x00000002 — "The system cannot find the file specified" when
connecting to a shared printer.

Causes:
  - numbered leftover folders under spool\prtprocs\x64
  - PendingFileRenameOperations entries holding printer driver files
  - RestrictDriverInstallationToAdministrators blocking the driver copy

Steps:
  1. Remove numbered folders in Print Processors (keep winprint.dll)
  2. Report third-party print processors
  3. Drop printer-related PendingFileRenameOperations
  4. Point and Print + RPC policy
  5. Spooler reset (delegated)
"""

from printfix.fixers.base import BaseFixer, FixContext
from printfix.fixers.spooler import SpoolerFixer
from printfix.models import FixResult


_PRTPROCS_SCRIPT = r"""
$prtProcsPath = "$env:SystemRoot\System32\spool\prtprocs\x64"

if (Test-Path $prtProcsPath) {
    $numericDirs = @(Get-ChildItem -Path $prtProcsPath -Directory -ErrorAction SilentlyContinue |
        Where-Object { $_.Name -match '^\d+$' })

    if ($numericDirs.Count -gt 0) {
        Write-Output "[INFO] Found $($numericDirs.Count) numbered folders in prtprocs\x64"

        Stop-Service -Name spooler -Force -ErrorAction SilentlyContinue
        Start-Sleep -Seconds 1

        $removed = 0
        foreach ($dir in $numericDirs) {
            try {
                Remove-Item -Path $dir.FullName -Recurse -Force -ErrorAction Stop
                $removed++
            } catch {
                Write-Output "[WARN] Could not remove $($dir.Name): $_"
            }
        }
        Write-Output "[OK] Removed numbered folders: $removed of $($numericDirs.Count)"

        Start-Service -Name spooler -ErrorAction SilentlyContinue
    } else {
        Write-Output "[OK] No leftover folders in prtprocs\x64"
    }

    $winprint = Join-Path $prtProcsPath "winprint.dll"
    if (Test-Path $winprint) {
        Write-Output "[OK] winprint.dll present"
    } else {
        Write-Output "[WARN] winprint.dll is missing, running sfc..."
        sfc /scannow 2>&1 | Out-Null
        Write-Output "[INFO] SFC finished"
    }
} else {
    Write-Output "[WARN] Folder $prtProcsPath not found"
}
"""

_ENVIRONMENTS_SCRIPT = r"""
$envPath = 'HKLM:\SYSTEM\CurrentControlSet\Control\Print\Environments\Windows x64\Print Processors'

try {
    $processors = Get-ChildItem -Path $envPath -ErrorAction SilentlyContinue
    $toReport = @($processors | Where-Object { $_.PSChildName -ne 'winprint' })

    if ($toReport.Count -gt 0) {
        Write-Output "[INFO] Found $($toReport.Count) third-party print processor(s)"
        foreach ($proc in $toReport) {
            $dllPath = (Get-ItemProperty -Path $proc.PSPath -Name 'Driver' -ErrorAction SilentlyContinue).Driver
            Write-Output "[INFO]   - $($proc.PSChildName) -> $dllPath"
        }
        Write-Output "[INFO] Third-party processors left in place (remove manually if needed)"
    } else {
        Write-Output "[OK] Only winprint registered"
    }
} catch {
    Write-Output "[WARN] Registry check failed: $_"
}
"""

_PENDING_RENAME_SCRIPT = r"""
$smPath = 'HKLM:\SYSTEM\CurrentControlSet\Control\Session Manager'

try {
    $pending = Get-ItemProperty -Path $smPath -Name 'PendingFileRenameOperations' -ErrorAction SilentlyContinue

    if ($pending) {
        $ops = $pending.PendingFileRenameOperations
        $printerRelated = @($ops | Where-Object { $_ -like '*spool*' -or $_ -like '*print*' -or $_ -like '*driver*' })

        if ($printerRelated.Count -gt 0) {
            Write-Output "[WARN] Found printer-related PendingFileRename entries: $($printerRelated.Count)"
            $clean = @($ops | Where-Object { $_ -notlike '*spool*' -and $_ -notlike '*print*' })
            if ($clean.Count -gt 0) {
                Set-ItemProperty -Path $smPath -Name 'PendingFileRenameOperations' -Value $clean -Force
            } else {
                Remove-ItemProperty -Path $smPath -Name 'PendingFileRenameOperations' -Force
            }
            Write-Output "[OK] Printer-related PendingFileRename entries removed"
        } else {
            Write-Output "[OK] PendingFileRenameOperations has no printer entries"
        }
    } else {
        Write-Output "[OK] PendingFileRenameOperations not present"
    }
} catch {
    Write-Output "[WARN] PendingFileRenameOperations check failed: $_"
}
"""

_POLICY_SCRIPT = r"""
try {
    $ppPath = 'HKLM:\SOFTWARE\Policies\Microsoft\Windows NT\Printers\PointAndPrint'
    if (-not (Test-Path $ppPath)) {
        New-Item -Path $ppPath -Force | Out-Null
    }
    Set-ItemProperty -Path $ppPath -Name 'RestrictDriverInstallationToAdministrators' -Value 0 -Type DWord -Force
    Set-ItemProperty -Path $ppPath -Name 'NoWarningNoElevationOnInstall' -Value 1 -Type DWord -Force
    Write-Output "[OK] Point and Print: driver installation allowed"

    $printPath = 'HKLM:\SYSTEM\CurrentControlSet\Control\Print'
    Set-ItemProperty -Path $printPath -Name 'RpcAuthnLevelPrivacyEnabled' -Value 0 -Type DWord -Force
    Write-Output "[OK] RpcAuthnLevelPrivacyEnabled = 0"
} catch {
    Write-Output "[WARN] Policy configuration failed: $_"
}
"""


class FileNotFoundFixer(BaseFixer):
    id = "file_not_found_02"
    name = "Error 0x00000002 (file not found)"
    description = (
        "Fixes \"The system cannot find the file specified (0x00000002)\" when "
        "connecting to a network printer. Cleans Print Processors and "
        "PendingFileRename entries and configures Point and Print."
    )
    target_codes = ("0x00000002", "0x00000003", "file_not_found", "system_cannot_find")

    def __init__(self) -> None:
        self._spooler = SpoolerFixer()

    async def run(self, ctx: FixContext) -> FixResult:
        ctx.info("Diagnosing and fixing error 0x00000002...")

        ctx.step("Step 1: cleaning leftover Print Processor folders...")
        await ctx.run(_PRTPROCS_SCRIPT)

        ctx.step("Step 2: checking print environments in the registry...")
        await ctx.run(_ENVIRONMENTS_SCRIPT)

        ctx.step("Step 3: checking PendingFileRenameOperations...")
        await ctx.run(_PENDING_RENAME_SCRIPT)

        ctx.step("Step 4: configuring Point and Print...")
        await ctx.run(_POLICY_SCRIPT)

        ctx.step("Step 5: restarting Print Spooler...")
        await ctx.delegate(self._spooler)

        ctx.info("Recommendation: reboot, then reconnect the printer.")

        if ctx.all_succeeded:
            return FixResult.ok("0x00000002 fix applied", ctx.steps)
        return FixResult.warn(ctx.partial_summary("0x00000002 fix"), ctx.steps)
