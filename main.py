from rich.pretty import pprint

from runopts import *

__docs__ = {
    FaultCode.MISSING_OPTION: "see RUN.md for the full list of options",
}

session = Session()
session.bootstrap()

travel = session.context("Time Travel", "Travel through time")
values = travel.options({
    "time": OptionConfig(type="string", required=True, description="Arrival date"),
    "traveler": OptionConfig(type="string", required=True, multiple=True, description="Who goes along"),
    "location": OptionConfig(type="string", default="X", aliases=["l"], description="Landing spot"),
})

advanced = travel.command("advanced", {
    "speed": OptionConfig(type="number", default=100, placeholder="km/h", description="Cruise speed"),
    "backup-location": OptionConfig(type="URL", description="Where to store snapshots"),
})


@session.defer
def backup():
    context = session.context("Backup", "Snapshot the timeline before leaving")
    return context.option("keep", OptionConfig(type="number", default=3, description="Snapshots to keep"))


if __name__ == '__main__':
    session.capture()
    pprint(values)
    pprint(advanced)
    pprint(backup())
