"""
Default printer fixers.

DefaultPrinter709Fixer — 0x00000709 "Operation could not be completed" when
setting the default printer. Windows managing the default itself, a broken
ACL on the HKCU Windows key or a stale Device value are the usual causes.

DefaultPrinterResetFixer — clears a bad Device entry and reassigns the
default, for "default printer does not stick".
"""

from printfix.engine.executor import ps_quote
from printfix.fixers.base import BaseFixer, FixContext
from printfix.models import FixResult


_709_SCRIPT = r"""
$printerName = __PRINTER_NAME__
$wqlName = $printerName -replace "'", "\'"
$regPath = 'HKCU:\SOFTWARE\Microsoft\Windows NT\CurrentVersion\Windows'

Write-Output "[INFO] Step 1: disabling automatic default printer management..."
try {
    Set-ItemProperty -Path $regPath -Name 'LegacyDefaultPrinterMode' -Value 1 -Type DWord -Force -ErrorAction Stop
    Write-Output "[OK] LegacyDefaultPrinterMode = 1 (manual)"
} catch {
    Write-Output "[WARN] Could not change LegacyDefaultPrinterMode: $_"
}

Write-Output "[INFO] Step 2: checking registry key permissions..."
try {
    $key = [Microsoft.Win32.Registry]::CurrentUser.OpenSubKey(
        'SOFTWARE\Microsoft\Windows NT\CurrentVersion\Windows', $true)
    if ($key) {
        $acl = $key.GetAccessControl()
        $user = [System.Security.Principal.WindowsIdentity]::GetCurrent().Name
        $rule = New-Object System.Security.AccessControl.RegistryAccessRule($user, 'FullControl', 'Allow')
        $acl.SetAccessRule($rule)
        $key.SetAccessControl($acl)
        $key.Close()
        Write-Output "[OK] FullControl granted to $user"
    } else {
        Write-Output "[WARN] Could not open the registry key"
    }
} catch {
    Write-Output "[WARN] Permission fix failed: $_"
}

Write-Output "[INFO] Step 3: rewriting the Device entry..."
try {
    Remove-ItemProperty -Path $regPath -Name 'UserSelectedDefault' -ErrorAction SilentlyContinue
    Write-Output "[OK] UserSelectedDefault removed"

    $wmiPrinter = Get-CimInstance -ClassName Win32_Printer -Filter "Name='$wqlName'" -ErrorAction SilentlyContinue
    if ($wmiPrinter) {
        $deviceValue = "$printerName,winspool,$($wmiPrinter.PortName)"
        Set-ItemProperty -Path $regPath -Name 'Device' -Value $deviceValue -Type String -Force
        Write-Output "[OK] Device = $deviceValue"
    } else {
        Write-Output "[WARN] Printer '$printerName' not found in WMI"
    }
} catch {
    Write-Output "[WARN] Device cleanup failed: $_"
}

Write-Output "[INFO] Step 4: setting the default printer..."
try {
    $net = New-Object -ComObject WScript.Network
    $net.SetDefaultPrinter($printerName)
    Write-Output "[OK] '$printerName' set as default (WScript.Network)"
} catch {
    Write-Output "[WARN] WScript.Network failed: $_"
    try {
        $cimPrinter = Get-CimInstance -ClassName Win32_Printer -Filter "Name='$wqlName'"
        Invoke-CimMethod -InputObject $cimPrinter -MethodName SetDefaultPrinter | Out-Null
        Write-Output "[OK] '$printerName' set as default (CIM)"
    } catch {
        Write-Output "[ERROR] Could not set the default printer: $_"
        exit 1
    }
}

Write-Output "[INFO] Step 5: restarting Print Spooler..."
Restart-Service -Name spooler -Force -ErrorAction SilentlyContinue
Start-Sleep -Seconds 2
$status = (Get-Service spooler).Status
Write-Output "[OK] Spooler: $status"

$default = Get-CimInstance -ClassName Win32_Printer -Filter "Default=True" -ErrorAction SilentlyContinue
if ($default) {
    Write-Output "[OK] Default printer: $($default.Name)"
}
"""

_RESET_SCRIPT = r"""
$newDefault = __PRINTER_NAME__

$regPath = 'HKCU:\Software\Microsoft\Windows NT\CurrentVersion\Windows'
$legacyVal = (Get-ItemProperty -Path $regPath -Name LegacyDefaultPrinterMode -ErrorAction SilentlyContinue).LegacyDefaultPrinterMode
if ($legacyVal -ne 1) {
    Set-ItemProperty -Path $regPath -Name LegacyDefaultPrinterMode -Value 1 -Type DWord -Force
    Write-Output "[OK] Automatic default printer disabled (LegacyDefaultPrinterMode=1)"
} else {
    Write-Output "[INFO] LegacyDefaultPrinterMode already 1"
}

if ($newDefault -ne '') {
    try {
        (New-Object -ComObject WScript.Network).SetDefaultPrinter($newDefault)
        Write-Output "[OK] Default printer set: $newDefault"
    } catch {
        Write-Output "[WARN] WScript.Network failed, trying rundll32..."
        & rundll32 printui.dll,PrintUIEntry /y /n $newDefault 2>&1 | Out-Null
        Write-Output "[OK] PrintUI ran for $newDefault"
    }
}

$check = (Get-CimInstance -Class Win32_Printer | Where-Object { $_.Default -eq $true }).Name
Write-Output "[OK] Current default printer: $check"
"""


class DefaultPrinter709Fixer(BaseFixer):
    id = "default_printer_709"
    name = "Error 0x00000709 (default printer)"
    description = (
        "Fixes \"Operation could not be completed (0x00000709)\" when setting the "
        "default printer. Turns off automatic management, repairs registry "
        "permissions and reassigns the printer."
    )
    target_codes = ("0x00000709", "709", "default_printer_failed")

    async def run(self, ctx: FixContext) -> FixResult:
        printer = ctx.printer
        if printer is None:
            ctx.warn("Select the printer to make default.")
            return FixResult.warn("No printer selected", ctx.steps)

        ctx.step(f"Fixing 0x00000709 for: {printer.name}")
        # Get-CimInstance needs the Desktop edition locally
        outcome = await ctx.run(
            _709_SCRIPT.replace("__PRINTER_NAME__", ps_quote(printer.name)), external=True,
        )

        if outcome.success:
            return FixResult.ok(f"'{printer.name}' set as the default printer", ctx.steps)
        return FixResult.fail(f"Could not set the default printer: {outcome.error}", ctx.steps)


class DefaultPrinterResetFixer(BaseFixer):
    id = "default_printer_reset"
    name = "Default printer reset"
    description = (
        "Clears a bad Device entry in the registry and reassigns the default "
        "printer. Fixes a default printer that does not stick."
    )
    target_codes = ("default", "device", "HKCU_printer")

    async def run(self, ctx: FixContext) -> FixResult:
        new_default = ctx.printer.name if ctx.printer is not None else ""
        if new_default:
            ctx.step(f"Setting default printer: '{new_default}'")
        else:
            ctx.step("Resetting the default printer entry...")

        outcome = await ctx.run(_RESET_SCRIPT.replace("__PRINTER_NAME__", ps_quote(new_default)))

        if outcome.success:
            return FixResult.ok("Default printer set", ctx.steps)
        return FixResult.warn(f"Partially applied: {outcome.error}", ctx.steps)
