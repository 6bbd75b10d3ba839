"""
Error 0x0000011b — RPC authentication level on the print server.

Appeared with the KB5005565 update series: clients reject the stricter RPC
privacy level when connecting to shared printers. The fix relaxes
RpcAuthnLevelPrivacyEnabled on the print server and restarts the Spooler.
"""

from printfix.engine.executor import ps_quote
from printfix.fixers.base import BaseFixer, FixContext
from printfix.models import FixResult

_REG_PATH = r"HKLM:\System\CurrentControlSet\Control\Print"
_REG_VALUE = "RpcAuthnLevelPrivacyEnabled"

_SCRIPT = r"""
$regPath = __REG_PATH__
$regValue = __REG_VALUE__

$current = (Get-ItemProperty -Path $regPath -Name $regValue -ErrorAction SilentlyContinue).$regValue
Write-Output "[INFO] Current value: $current"

if ($current -eq 0) {
    Write-Output "[OK] Patch already applied (value = 0). Nothing else to change."
} else {
    Set-ItemProperty -Path $regPath -Name $regValue -Value 0 -Type DWord -Force
    $verify = (Get-ItemProperty -Path $regPath -Name $regValue).$regValue
    if ($verify -eq 0) {
        Write-Output "[OK] Registry updated: $regValue = 0"
    } else {
        Write-Output "[ERROR] Registry patch did not take effect"
        exit 1
    }
}

Write-Output "[INFO] Restarting Print Spooler..."
Stop-Service -Name spooler -Force -ErrorAction SilentlyContinue
Start-Service -Name spooler -ErrorAction Stop
$status = (Get-Service spooler).Status
Write-Output "[OK] Spooler status: $status"
Write-Output "[OK] 0x0000011b patch applied"
"""


class RpcAuthFixer(BaseFixer):
    id = "rpc_auth_11b"
    name = "Error 0x0000011b (RPC auth)"
    description = (
        f"Sets {_REG_VALUE} = 0 on the print server and restarts the Spooler. "
        "Fixes shared printer connection failures after Windows updates (KB5005565+)."
    )
    target_codes = ("0x0000011b", "11b", "ERROR_INVALID_PRINTER_NAME")

    async def run(self, ctx: FixContext) -> FixResult:
        ctx.step(f"Applying registry patch {_REG_VALUE} on {ctx.target_label}...")

        script = (
            _SCRIPT
            .replace("__REG_PATH__", ps_quote(_REG_PATH))
            .replace("__REG_VALUE__", ps_quote(_REG_VALUE))
        )
        outcome = await ctx.run(script)

        if not outcome.success:
            return FixResult.fail(f"0x0000011b patch failed: {outcome.error}", ctx.steps)

        ctx.ok("Tip: applying the same patch on client PCs removes the error completely.")
        return FixResult.ok("0x0000011b patch applied", ctx.steps)
