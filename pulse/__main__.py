from pulse.main import run

run()
