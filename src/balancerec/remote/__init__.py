"""Remote access to a balance board paired with another machine.

:class:`SSHClient` starts the driver bridge on a lab host over SSH and
streams its stdout back, so :class:`~balancerec.sensors.LineSampleSource`
can treat it like a local bridge process.
"""

from .ssh_client import Host, RemoteLineStream, SSHClient

__all__ = ["Host", "RemoteLineStream", "SSHClient"]
