"""
IPP (Internet Printing Protocol) install failures: 0x00000bcb, 0x00000bcc,
0x80070bc9 and the generic "Windows cannot connect to the printer".

Steps:
  1. Internet Printing Client feature enabled
  2. Microsoft IPP Class Driver present
  3. Outbound firewall rules for TCP 631 (IPP) and 443 (IPPS)
  4. Queue and IPP cache cleanup with a Spooler bounce
  5. Port reachability, only for network printers on an http/ipp port
"""

from printfix.engine.executor import ps_quote
from printfix.fixers.base import BaseFixer, FixContext
from printfix.models import FixResult


_FEATURE_SCRIPT = r"""
try {
    $feature = Get-WindowsOptionalFeature -Online -FeatureName 'Printing-Foundation-InternetPrinting-Client' -ErrorAction SilentlyContinue
    if (-not $feature) {
        $feature = Get-WindowsOptionalFeature -Online -FeatureName 'Internet-Printing-Client' -ErrorAction SilentlyContinue
    }

    if ($feature) {
        if ($feature.State -eq 'Enabled') {
            Write-Output "[OK] Internet Printing Client: enabled"
        } else {
            Write-Output "[INFO] Internet Printing Client is disabled. Enabling..."
            Enable-WindowsOptionalFeature -Online -FeatureName $feature.FeatureName -NoRestart -ErrorAction Stop | Out-Null
            Write-Output "[OK] Internet Printing Client enabled"
        }
    } else {
        Write-Output "[INFO] Checking with dism..."
        $dismResult = dism /online /get-featureinfo /featurename:Printing-Foundation-InternetPrinting-Client 2>&1
        $state = ($dismResult | Select-String 'State').ToString()
        Write-Output "[INFO] DISM: $state"
        if ($state -like '*Disabled*') {
            dism /online /enable-feature /featurename:Printing-Foundation-InternetPrinting-Client /norestart 2>&1 | Out-Null
            Write-Output "[OK] Feature enabled through DISM"
        }
    }
} catch {
    Write-Output "[WARN] Feature check failed: $_"
}
"""

_CLASS_DRIVER_SCRIPT = r"""
try {
    $ippDriver = Get-PrinterDriver -Name "Microsoft IPP Class Driver" -ErrorAction SilentlyContinue
    if ($ippDriver) {
        Write-Output "[OK] Microsoft IPP Class Driver installed"
        Write-Output "[INFO]   Version: $($ippDriver.MajorVersion).$($ippDriver.MinorVersion)"
        Write-Output "[INFO]   Environment: $($ippDriver.PrinterEnvironment)"
    } else {
        Write-Output "[WARN] Microsoft IPP Class Driver not found"
        $ippInf = Get-ChildItem -Path "$env:SystemRoot\INF" -Filter "prnms*" -ErrorAction SilentlyContinue |
            Select-Object -First 1
        if ($ippInf) {
            $result = pnputil.exe /add-driver $ippInf.FullName /install 2>&1
            Write-Output "[INFO] pnputil: $result"
        } else {
            try {
                Add-PrinterDriver -Name "Microsoft IPP Class Driver" -ErrorAction Stop
                Write-Output "[OK] Microsoft IPP Class Driver added"
            } catch {
                Write-Output "[WARN] Could not add the class driver: $_"
            }
        }
    }
} catch {
    Write-Output "[WARN] Class driver check failed: $_"
}
"""

_FIREWALL_SCRIPT = r"""
try {
    $existing = Get-NetFirewallRule -DisplayName "printfix IPP Allow" -ErrorAction SilentlyContinue
    if (-not $existing) {
        New-NetFirewallRule -DisplayName "printfix IPP Allow" `
            -Direction Outbound -Action Allow `
            -Protocol TCP -RemotePort 631 `
            -Description "Allow IPP traffic (port 631)" `
            -ErrorAction Stop | Out-Null
        Write-Output "[OK] Firewall rule created: TCP 631 (IPP)"
    } else {
        $existing | Set-NetFirewallRule -Enabled True
        Write-Output "[OK] IPP rule already present and enabled"
    }

    $existing443 = Get-NetFirewallRule -DisplayName "printfix IPPS Allow" -ErrorAction SilentlyContinue
    if (-not $existing443) {
        New-NetFirewallRule -DisplayName "printfix IPPS Allow" `
            -Direction Outbound -Action Allow `
            -Protocol TCP -RemotePort 443 `
            -Description "Allow IPPS traffic (port 443)" `
            -ErrorAction Stop | Out-Null
        Write-Output "[OK] Firewall rule created: TCP 443 (IPPS)"
    } else {
        Write-Output "[OK] IPPS rule already present"
    }
} catch {
    Write-Output "[WARN] Firewall configuration failed: $_"
}
"""

_CACHE_SCRIPT = r"""
try {
    Stop-Service -Name spooler -Force -ErrorAction SilentlyContinue
    Start-Sleep -Seconds 1

    $spoolPath = "$env:SystemRoot\System32\spool\PRINTERS"
    $files = @(Get-ChildItem -Path $spoolPath -ErrorAction SilentlyContinue)
    $files | Remove-Item -Force -ErrorAction SilentlyContinue
    Write-Output "[OK] Queue files removed: $($files.Count)"

    $cachePath = "$env:LOCALAPPDATA\Microsoft\Windows\INetCache"
    $ippCache = @(Get-ChildItem -Path $cachePath -Recurse -Filter "*ipp*" -ErrorAction SilentlyContinue)
    if ($ippCache.Count -gt 0) {
        $ippCache | Remove-Item -Force -ErrorAction SilentlyContinue
        Write-Output "[OK] IPP cache cleared: $($ippCache.Count) files"
    } else {
        Write-Output "[OK] IPP cache is clean"
    }

    Start-Service -Name spooler -ErrorAction Stop
    Start-Sleep -Seconds 2
    $status = (Get-Service spooler).Status
    Write-Output "[OK] Spooler: $status"
} catch {
    Write-Output "[ERROR] Cache cleanup failed: $_"
}
"""

_PORT_SCRIPT = r"""
$uri = __PORT_URI__
try {
    $parsed = [System.Uri]::new($uri)
    $hostName = $parsed.Host
    $port = if ($parsed.Port -gt 0) { $parsed.Port } else { 631 }

    $ping = Test-Connection -ComputerName $hostName -Count 1 -Quiet -ErrorAction SilentlyContinue
    if ($ping) { Write-Output "[OK] IPP server $hostName is reachable" }
    else { Write-Output "[WARN] IPP server does not answer ping" }

    $tcp = New-Object Net.Sockets.TcpClient
    try {
        $tcp.ConnectAsync($hostName, $port).Wait(2000) | Out-Null
        if ($tcp.Connected) {
            Write-Output "[OK] Port $port on $hostName is open"
        } else {
            Write-Output "[WARN] Port $port is closed or blocked"
        }
    } catch {
        Write-Output "[WARN] TCP port check failed: $_"
    } finally {
        $tcp.Dispose()
    }
} catch {
    Write-Output "[WARN] Could not parse port URI: $_"
}
"""


class IppFixer(BaseFixer):
    id = "ipp"
    name = "IPP failure (Internet Printing)"
    description = (
        "Fixes printer install failures over IPP. Enables the Windows feature, "
        "checks the IPP Class Driver, opens port 631 and clears the cache."
    )
    target_codes = ("0x00000bcb", "0x00000bcc", "0x80070bc9", "ipp", "internet_printing")

    async def run(self, ctx: FixContext) -> FixResult:
        ctx.info("Diagnosing and fixing the IPP failure...")

        ctx.step("Step 1: checking the Internet Printing Client feature...")
        await ctx.run(_FEATURE_SCRIPT, external=True)

        ctx.step("Step 2: checking Microsoft IPP Class Driver...")
        await ctx.run(_CLASS_DRIVER_SCRIPT, external=True)

        ctx.step("Step 3: firewall rules for IPP (ports 631, 443)...")
        await ctx.run(_FIREWALL_SCRIPT, external=True)

        ctx.step("Step 4: clearing the IPP connection cache...")
        await ctx.run(_CACHE_SCRIPT, external=True)

        printer = ctx.printer
        if printer is not None and printer.is_network and printer.port_name.startswith(("http", "ipp")):
            ctx.step(f"Step 5: checking the IPP port ({printer.port_name})...")
            await ctx.run(_PORT_SCRIPT.replace("__PORT_URI__", ps_quote(printer.port_name)), external=True)

        ctx.info("IPP needs the Windows feature and the MS IPP Class Driver.")
        ctx.info("If the problem persists, reboot the computer.")

        if ctx.all_succeeded and not any(entry.level == "error" for entry in ctx.steps):
            return FixResult.ok("IPP fix applied", ctx.steps)
        return FixResult.warn("IPP fix partially applied; check the log", ctx.steps)
