"""
Error 0x00004005 — "Operation could not be completed" when connecting to a
shared printer. One of the most common post-update failures.

Steps:
  1. RpcAuthnLevelPrivacyEnabled = 0
  2. Point and Print: allow non-admin driver installation
  3. Firewall: enable the File and Printer Sharing group
  4. SMB client: LanmanWorkstation running, SMB1 state reported
  5. Spooler reset (delegated to spooler_reset)
  6. Print server reachability, for network printers on a UNC port
"""

from printfix.engine.executor import ps_quote
from printfix.fixers.base import BaseFixer, FixContext
from printfix.fixers.spooler import SpoolerFixer
from printfix.models import FixResult


_RPC_SCRIPT = r"""
$regPath = 'HKLM:\SYSTEM\CurrentControlSet\Control\Print'
$regName = 'RpcAuthnLevelPrivacyEnabled'

try {
    $current = Get-ItemProperty -Path $regPath -Name $regName -ErrorAction SilentlyContinue
    if ($current -and $current.$regName -eq 0) {
        Write-Output "[OK] RpcAuthnLevelPrivacyEnabled already 0 (disabled)"
    } else {
        Set-ItemProperty -Path $regPath -Name $regName -Value 0 -Type DWord -Force
        Write-Output "[OK] RpcAuthnLevelPrivacyEnabled set to 0"
    }
} catch {
    Write-Output "[ERROR] Could not change the registry: $_"
}
"""

_POINT_AND_PRINT_SCRIPT = r"""
$regPath = 'HKLM:\SOFTWARE\Policies\Microsoft\Windows NT\Printers\PointAndPrint'

try {
    if (-not (Test-Path $regPath)) {
        New-Item -Path $regPath -Force | Out-Null
        Write-Output "[OK] Created PointAndPrint policy key"
    }

    Set-ItemProperty -Path $regPath -Name 'RestrictDriverInstallationToAdministrators' -Value 0 -Type DWord -Force
    Write-Output "[OK] RestrictDriverInstallationToAdministrators = 0"

    Set-ItemProperty -Path $regPath -Name 'NoWarningNoElevationOnInstall' -Value 1 -Type DWord -Force
    Set-ItemProperty -Path $regPath -Name 'UpdatePromptSettings' -Value 1 -Type DWord -Force
    Write-Output "[OK] Point and Print: install prompts disabled"
} catch {
    Write-Output "[WARN] Could not configure Point and Print: $_"
}
"""

_FIREWALL_SCRIPT = r"""
try {
    $rules = Get-NetFirewallRule -DisplayGroup 'File and Printer Sharing' -ErrorAction SilentlyContinue

    if ($rules) {
        $disabled = $rules | Where-Object { $_.Enabled -eq 'False' }
        if ($disabled) {
            $disabled | Set-NetFirewallRule -Enabled True
            Write-Output "[OK] Enabled File and Printer Sharing firewall rules: $(@($disabled).Count)"
        } else {
            Write-Output "[OK] File and Printer Sharing firewall rules already enabled"
        }
    } else {
        Write-Output "[WARN] File and Printer Sharing rule group not found"
    }
} catch {
    Write-Output "[WARN] Firewall configuration failed: $_"
}
"""

_SMB_SCRIPT = r"""
try {
    # Some legacy print servers still need SMB1
    $smb1 = Get-WindowsOptionalFeature -Online -FeatureName 'SMB1Protocol' -ErrorAction SilentlyContinue
    if ($smb1 -and $smb1.State -eq 'Disabled') {
        Write-Output "[INFO] SMB1 is disabled. Old print servers may need it enabled."
    } else {
        Write-Output "[OK] SMB1: $($smb1.State)"
    }

    $lanman = Get-Service -Name LanmanWorkstation -ErrorAction SilentlyContinue
    if ($lanman.Status -ne 'Running') {
        Start-Service -Name LanmanWorkstation -ErrorAction Stop
        Write-Output "[OK] LanmanWorkstation service started"
    } else {
        Write-Output "[OK] LanmanWorkstation service: Running"
    }
} catch {
    Write-Output "[WARN] SMB client check failed: $_"
}
"""

_REACHABILITY_SCRIPT = r"""
$uncPath = __UNC_PATH__
$server = ($uncPath -replace '^\\\\', '') -split '\\' | Select-Object -First 1

$ping = Test-Connection -ComputerName $server -Count 1 -Quiet -ErrorAction SilentlyContinue
if ($ping) {
    Write-Output "[OK] Server $server answers ping"
} else {
    Write-Output "[WARN] Server $server does not answer (check name/IP)"
}

try {
    $shares = net view "\\$server" 2>&1
    Write-Output "[OK] Server shares are reachable"
} catch {
    Write-Output "[WARN] Could not list server shares: $_"
}
"""


class ConnectionFixer(BaseFixer):
    id = "connection_4005"
    name = "Error 0x00004005 (connection)"
    description = (
        "Fixes \"Operation could not be completed (0x00004005)\" when connecting "
        "to a network printer after Windows updates. Configures RPC, Point and "
        "Print, the firewall, the SMB client and resets the Spooler."
    )
    target_codes = ("0x00004005", "4005", "operation_could_not_be_completed")

    def __init__(self) -> None:
        self._spooler = SpoolerFixer()

    async def run(self, ctx: FixContext) -> FixResult:
        ctx.info("Diagnosing and fixing error 0x00004005...")

        # Step failures are tolerated: they downgrade the verdict to Warning.
        ctx.step("Step 1: RPC authentication level...")
        await ctx.run(_RPC_SCRIPT, external=True)

        ctx.step("Step 2: allowing driver installation (Point and Print)...")
        await ctx.run(_POINT_AND_PRINT_SCRIPT, external=True)

        ctx.step("Step 3: firewall rules...")
        await ctx.run(_FIREWALL_SCRIPT, external=True)

        ctx.step("Step 4: SMB client...")
        await ctx.run(_SMB_SCRIPT, external=True)

        ctx.step("Step 5: restarting Print Spooler...")
        await ctx.delegate(self._spooler)

        printer = ctx.printer
        if printer is not None and printer.is_network and printer.port_name.startswith("\\\\"):
            ctx.step(f"Step 6: checking reachability of {printer.name}...")
            script = _REACHABILITY_SCRIPT.replace("__UNC_PATH__", ps_quote(printer.port_name))
            await ctx.run(script, external=True)

        ctx.info("=" * 50)
        ctx.info("Recommendation: reboot the computer to apply every registry change.")

        if ctx.all_succeeded:
            return FixResult.ok("0x00004005 fix applied. A reboot is recommended.", ctx.steps)
        return FixResult.warn(ctx.partial_summary("0x00004005 fix"), ctx.steps)
