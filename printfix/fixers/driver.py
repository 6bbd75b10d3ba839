r"""
Printer driver fixers.

DriverCleanupFixer (0x0000007b) — removes a damaged driver and its printer
from the store, clears the driver cache and restarts the Spooler.

DriverFixer — interactive reinstall. The operator picks one of:
  inf   install a driver package with pnputil
  unc   connect a shared printer by \\server\printer path
  auto  reinstall the printer's current driver from DriverStore
"""

from printfix.engine.executor import ps_quote
from printfix.fixers.base import BaseFixer, FixContext
from printfix.models import FixResult, InputKind, InputSpec


# ── Cleanup ───────────────────────────────────────────────────────────────────

_CLEANUP_SCRIPT = r"""
$ErrorActionPreference = 'Continue'
$printerName = __PRINTER_NAME__
$driverName = __DRIVER_NAME__

Write-Output "[INFO] Stopping Spooler..."
Stop-Service -Name spooler -Force -ErrorAction SilentlyContinue
Start-Sleep -Seconds 2

if ($printerName -ne '') {
    Write-Output "[INFO] Removing printer '$printerName'..."
    try {
        Remove-Printer -Name $printerName -ErrorAction Stop
        Write-Output "[OK] Printer removed"
    } catch {
        Write-Output "[WARN] Printer not found or already removed: $_"
    }
}

if ($driverName -ne '') {
    Write-Output "[INFO] Removing driver '$driverName'..."
    try {
        Remove-PrinterDriver -Name $driverName -ErrorAction Stop
        Write-Output "[OK] Driver removed"
    } catch {
        Write-Output "[WARN] Remove-PrinterDriver failed: $_"
    }

    Write-Output "[INFO] Clearing the driver store via printui..."
    & printui.exe /s /t2 2>&1 | Out-Null
    Write-Output "[INFO] printui finished"
}

Write-Output "[INFO] Clearing spool\drivers cache..."
$driverCache = "$env:SystemRoot\System32\spool\drivers"
Get-ChildItem -Path $driverCache -Recurse -Include *.tmp,*.bak -ErrorAction SilentlyContinue |
    Remove-Item -Force -ErrorAction SilentlyContinue
Write-Output "[OK] Cache cleared"

Write-Output "[INFO] Starting Spooler..."
Start-Service -Name spooler -ErrorAction Stop
$status = (Get-Service spooler).Status
Write-Output "[OK] Spooler started, status: $status"
"""


class DriverCleanupFixer(BaseFixer):
    id = "driver_cleanup_7b"
    name = "Error 0x0000007b (driver)"
    description = (
        "Removes a damaged printer driver from the Windows driver store, clears "
        "the Spooler driver cache and restarts the Spooler. Fixes the invalid "
        "device name error."
    )
    target_codes = ("0x0000007b", "7b", "ERROR_INVALID_NAME")

    async def run(self, ctx: FixContext) -> FixResult:
        printer = ctx.printer
        if printer is None:
            ctx.warn("No printer selected. Running a general driver store cleanup.")
            ctx.step("Starting 0x0000007b fix")
        else:
            ctx.step(f"Starting 0x0000007b fix for '{printer.name}'")

        script = (
            _CLEANUP_SCRIPT
            .replace("__PRINTER_NAME__", ps_quote(printer.name if printer else ""))
            .replace("__DRIVER_NAME__", ps_quote(printer.driver_name if printer else ""))
        )
        outcome = await ctx.run(script)

        ctx.info("Next: reinstall the printer driver from an INF file or the vendor package.")
        if outcome.success:
            return FixResult.ok(
                "0x0000007b fix applied: printer and driver removed, Spooler restarted", ctx.steps,
            )
        return FixResult.warn(f"0x0000007b fix partially applied: {outcome.error}", ctx.steps)


# ── Reinstall (interactive) ───────────────────────────────────────────────────

_INF_SCRIPT = r"""
$infPath = __INF_PATH__
$driverName = __DRIVER_NAME__
$printerName = __PRINTER_NAME__

if (-not (Test-Path $infPath)) {
    Write-Output "[ERROR] INF file not found: $infPath"
    exit 1
}

Write-Output "[INFO] Adding the INF to the driver store with pnputil..."
$pnpResult = pnputil.exe /add-driver "$infPath" /install 2>&1
foreach ($line in $pnpResult) {
    Write-Output "[INFO] pnputil: $line"
}

if ($printerName -ne '' -and $driverName -ne 'Unknown') {
    try {
        $newDrivers = @(Get-PrinterDriver -ErrorAction SilentlyContinue |
            Where-Object { $_.Name -like "*$($driverName.Split(' ')[0])*" })
        if ($newDrivers.Count -gt 0) {
            Write-Output "[OK] Matching driver found: $($newDrivers[0].Name)"
        } else {
            Write-Output "[INFO] Driver installed but must be bound to the printer manually."
        }
    } catch {
        Write-Output "[WARN] Could not list installed drivers: $_"
    }
}

Write-Output "[INFO] Restarting Print Spooler..."
Stop-Service -Name spooler -Force -ErrorAction SilentlyContinue
Start-Sleep -Seconds 2
Start-Service -Name spooler -ErrorAction Stop
Write-Output "[OK] Spooler restarted"
Write-Output "[OK] Driver installed from INF"
"""

_UNC_SCRIPT = r"""
$uncPath = __UNC_PATH__

$server = ($uncPath -replace '^\\\\', '') -split '\\' | Select-Object -First 1
Write-Output "[INFO] Checking print server: $server"
$ping = Test-Connection -ComputerName $server -Count 1 -Quiet -ErrorAction SilentlyContinue
if (-not $ping) {
    Write-Output "[WARN] Server $server does not answer ping (ICMP may be blocked)"
} else {
    Write-Output "[OK] Server $server is reachable"
}

$existing = Get-Printer -Name $uncPath -ErrorAction SilentlyContinue
if ($existing) {
    Write-Output "[WARN] Printer already installed: $uncPath. Removing it to reinstall..."
    Remove-Printer -Name $uncPath -ErrorAction SilentlyContinue
    Start-Sleep -Seconds 1
}

try {
    Add-Printer -ConnectionName $uncPath -ErrorAction Stop
    Write-Output "[OK] Printer '$uncPath' added"
} catch {
    Write-Output "[ERROR] Could not add the printer: $_"
    exit 1
}

$check = Get-Printer -Name $uncPath -ErrorAction SilentlyContinue
if ($check) {
    Write-Output "[OK] Status: $($check.PrinterStatus)"
    Write-Output "[OK] Driver: $($check.DriverName)"
}
"""

_AUTO_SCRIPT = r"""
$driverName = __DRIVER_NAME__
$printerName = __PRINTER_NAME__

Write-Output "[INFO] Looking for '$driverName' in DriverStore..."
$installedDrivers = Get-PrinterDriver -ErrorAction SilentlyContinue
$match = $installedDrivers | Where-Object { $_.Name -eq $driverName }

if ($match) {
    Write-Output "[OK] Driver found: $($match.Name)"
    Write-Output "[INFO] Environment: $($match.PrinterEnvironment)"
    Write-Output "[INFO] INF path: $($match.InfPath)"

    Write-Output "[INFO] Removing the current driver..."
    try {
        Remove-PrinterDriver -Name $driverName -ErrorAction Stop
        Write-Output "[OK] Driver removed"
    } catch {
        Write-Output "[WARN] Could not remove it, continuing: $_"
    }

    Stop-Service -Name spooler -Force -ErrorAction SilentlyContinue
    Start-Sleep -Seconds 2
    Start-Service -Name spooler -ErrorAction Stop
    Write-Output "[OK] Spooler restarted"

    try {
        Add-PrinterDriver -Name $driverName -ErrorAction Stop
        Write-Output "[OK] Driver '$driverName' reinstalled from DriverStore"
    } catch {
        Write-Output "[ERROR] Could not reinstall the driver: $_"
        Write-Output "[INFO] Install it manually from an INF file"
        exit 1
    }
} else {
    Write-Output "[WARN] Driver '$driverName' not found in DriverStore"
    $alternatives = $installedDrivers | Select-Object -First 10
    if ($alternatives) {
        Write-Output "[INFO] Available drivers:"
        foreach ($drv in $alternatives) {
            Write-Output "[INFO]   - $($drv.Name)"
        }
    }
    Write-Output "[INFO] Install the driver manually from an INF file (inf mode)"
}
"""


class DriverFixer(BaseFixer):
    id = "driver_reinstall"
    name = "Driver reinstall"
    description = (
        "Reinstalls a printer driver from an INF file, connects a shared printer "
        "by UNC path, or reinstalls the current driver from DriverStore. Use for "
        "driver errors (0x0000007b, 0x00000bc4)."
    )
    target_codes = ("0x0000007b", "0x00000bc4", "driver", "install")
    input_spec = InputSpec(
        title="Driver reinstall",
        description=(
            "Choose how to install:\n"
            "  inf  — path to the driver INF file\n"
            "  unc  — network path (\\\\server\\printer)\n"
            "  auto — find the current driver in DriverStore"
        ),
    )

    async def run(self, ctx: FixContext) -> FixResult:
        kind = ctx.params.kind
        if kind is InputKind.INF_FILE:
            return await self._install_inf(ctx)
        if kind is InputKind.UNC_PATH:
            return await self._add_unc(ctx)
        if kind is InputKind.AUTO:
            return await self._auto(ctx)
        return FixResult.fail(f"Unknown install mode: {kind}", ctx.steps)

    async def _install_inf(self, ctx: FixContext) -> FixResult:
        inf_path = ctx.params.path
        if not inf_path:
            ctx.warn("INF path not provided.")
            return FixResult.warn("INF path not provided", ctx.steps)

        printer = ctx.printer
        driver_name = printer.driver_name if printer and printer.driver_name else "Unknown"
        ctx.step(f"Installing driver from: {inf_path}")
        ctx.info(f"Current driver: {driver_name}")

        script = (
            _INF_SCRIPT
            .replace("__INF_PATH__", ps_quote(inf_path))
            .replace("__DRIVER_NAME__", ps_quote(driver_name))
            .replace("__PRINTER_NAME__", ps_quote(printer.name if printer else ""))
        )
        outcome = await ctx.run(script)

        if outcome.success:
            return FixResult.ok(f"Driver installed from {inf_path}", ctx.steps)
        return FixResult.fail(f"Driver install failed: {outcome.error}", ctx.steps)

    async def _add_unc(self, ctx: FixContext) -> FixResult:
        unc_path = ctx.params.path
        if not unc_path:
            ctx.warn("UNC path not provided.")
            return FixResult.warn("UNC path not provided", ctx.steps)

        ctx.step(f"Adding network printer: {unc_path}")
        outcome = await ctx.run(_UNC_SCRIPT.replace("__UNC_PATH__", ps_quote(unc_path)))

        if outcome.success:
            return FixResult.ok(f"Printer {unc_path} added", ctx.steps)
        return FixResult.fail(f"Could not add printer: {outcome.error}", ctx.steps)

    async def _auto(self, ctx: FixContext) -> FixResult:
        printer = ctx.printer
        if printer is None:
            ctx.warn("Select a printer to search for its driver.")
            return FixResult.warn("No printer selected", ctx.steps)

        ctx.step(f"Searching for a driver for: {printer.name}")
        ctx.info(f"Current driver: {printer.driver_name}")

        script = (
            _AUTO_SCRIPT
            .replace("__DRIVER_NAME__", ps_quote(printer.driver_name))
            .replace("__PRINTER_NAME__", ps_quote(printer.name))
        )
        outcome = await ctx.run(script)

        if outcome.success:
            return FixResult.ok(f"Driver {printer.driver_name} reinstalled", ctx.steps)
        return FixResult.fail(f"Driver reinstall failed: {outcome.error}", ctx.steps)
