r"""
Error 0x0000007e — "The specified module could not be found".

Causes:
  - mscms.dll missing from the driver directories
  - a broken CopyFiles\BIDI key on the printer (HP Universal and others)
  - damaged DLLs under spool\drivers
"""

from printfix.engine.executor import ps_quote
from printfix.fixers.base import BaseFixer, FixContext
from printfix.models import FixResult


_MSCMS_SCRIPT = r"""
$sourceDir = "$env:SystemRoot\System32"
$targetDirs = @(
    "$env:SystemRoot\System32\spool\drivers\x64\3",
    "$env:SystemRoot\System32\spool\drivers\x64\4",
    "$env:SystemRoot\System32\spool\drivers\W32X86\3"
)

$sourceDll = Join-Path $sourceDir "mscms.dll"
if (-not (Test-Path $sourceDll)) {
    Write-Output "[ERROR] mscms.dll missing from System32, SFC required"
    sfc /scannow 2>&1 | Select-Object -First 5 | ForEach-Object { Write-Output "[INFO] SFC: $_" }
} else {
    Write-Output "[OK] mscms.dll found in System32"

    foreach ($dir in $targetDirs) {
        if (Test-Path $dir) {
            $target = Join-Path $dir "mscms.dll"
            if (-not (Test-Path $target)) {
                try {
                    Copy-Item -Path $sourceDll -Destination $target -Force
                    Write-Output "[OK] mscms.dll copied to $dir"
                } catch {
                    Write-Output "[WARN] Could not copy to ${dir}: $_"
                }
            } else {
                Write-Output "[OK] mscms.dll already in $dir"
            }
        }
    }
}
"""

_BIDI_SCRIPT = r"""
$printerName = __PRINTER_NAME__
$regBase = 'HKLM:\SYSTEM\CurrentControlSet\Control\Print\Printers'
$printerPath = Join-Path $regBase $printerName
$bidiPath = Join-Path $printerPath 'CopyFiles\BIDI'

if (Test-Path $bidiPath) {
    try {
        $backupFile = "$env:TEMP\bidi_backup_$($printerName -replace '[\\\/\:]', '_').reg"
        reg export "HKLM\SYSTEM\CurrentControlSet\Control\Print\Printers\$printerName\CopyFiles\BIDI" $backupFile /y 2>&1 | Out-Null
        Write-Output "[INFO] BIDI key backed up to $backupFile"

        Remove-Item -Path $bidiPath -Recurse -Force
        Write-Output "[OK] CopyFiles\BIDI key removed for '$printerName'"
    } catch {
        Write-Output "[WARN] Could not remove the BIDI key: $_"
    }
} else {
    Write-Output "[OK] No BIDI key, nothing to do"
}
"""

_DRIVER_FILES_SCRIPT = r"""
$driversPath = "$env:SystemRoot\System32\spool\drivers\x64\3"

if (Test-Path $driversPath) {
    $dlls = @(Get-ChildItem -Path $driversPath -Filter "*.dll" -ErrorAction SilentlyContinue)
    $broken = @()

    foreach ($dll in $dlls) {
        try {
            # A valid PE image starts with "MZ"
            $bytes = [System.IO.File]::ReadAllBytes($dll.FullName)
            if ($bytes.Length -lt 64 -or $bytes[0] -ne 0x4D -or $bytes[1] -ne 0x5A) {
                $broken += $dll.Name
            }
        } catch {
            $broken += $dll.Name
        }
    }

    Write-Output "[INFO] Driver files: $($dlls.Count)"
    if ($broken.Count -gt 0) {
        Write-Output "[WARN] Damaged files:"
        foreach ($b in $broken) {
            Write-Output "[WARN]   - $b"
        }
    } else {
        Write-Output "[OK] All driver DLLs look intact"
    }
}
"""

_RPC_RESTART_SCRIPT = r"""
$printPath = 'HKLM:\SYSTEM\CurrentControlSet\Control\Print'
Set-ItemProperty -Path $printPath -Name 'RpcAuthnLevelPrivacyEnabled' -Value 0 -Type DWord -Force -ErrorAction SilentlyContinue
Write-Output "[OK] RpcAuthnLevelPrivacyEnabled = 0"

Restart-Service -Name spooler -Force -ErrorAction SilentlyContinue
Start-Sleep -Seconds 2
$status = (Get-Service spooler).Status
Write-Output "[OK] Spooler: $status"
"""


class ModuleNotFoundFixer(BaseFixer):
    id = "module_not_found_7e"
    name = "Error 0x0000007e (module not found)"
    description = (
        "Fixes \"The specified module could not be found (0x0000007e)\" when "
        "connecting to a printer. Copies mscms.dll, removes the BIDI registry "
        "key and checks driver files."
    )
    target_codes = ("0x0000007e", "7e", "module_not_found")

    async def run(self, ctx: FixContext) -> FixResult:
        ctx.info("Diagnosing and fixing error 0x0000007e...")

        ctx.step("Step 1: checking and copying mscms.dll...")
        await ctx.run(_MSCMS_SCRIPT)

        if ctx.printer is not None:
            ctx.step(f"Step 2: checking the BIDI key for '{ctx.printer.name}'...")
            await ctx.run(_BIDI_SCRIPT.replace("__PRINTER_NAME__", ps_quote(ctx.printer.name)))
        else:
            ctx.step("Step 2: no printer selected, skipping BIDI cleanup.")

        ctx.step("Step 3: checking driver file integrity...")
        await ctx.run(_DRIVER_FILES_SCRIPT)

        ctx.step("Step 4: RPC policy and Spooler restart...")
        final = await ctx.run(_RPC_RESTART_SCRIPT)

        ctx.info("Recommendation: try reconnecting the printer.")

        if ctx.all_succeeded:
            return FixResult.ok("0x0000007e fix applied: mscms.dll in place, BIDI cleaned", ctx.steps)
        if not final.success:
            return FixResult.warn(f"0x0000007e fix partially applied: {final.error}", ctx.steps)
        return FixResult.warn(ctx.partial_summary("0x0000007e fix"), ctx.steps)
