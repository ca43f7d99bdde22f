[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "ivrsip"
version = "0.1.0"
description = "A SIP interactive voice response (IVR) application with DTMF menu handling and call transfer"
requires-python = ">=3.10"
dependencies = []
keywords = ["sip", "ivr", "voip", "telephony", "dtmf", "sdp", "call-transfer"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Console",
    "Intended Audience :: Telecommunications Industry",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Communications :: Telephony",
    "Topic :: Communications :: Internet Phone",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
ivrsip = "ivrsip.application:main"

[tool.hatch.build.targets.wheel]
packages = ["ivrsip"]

[tool.pytest.ini_options]
addopts = "-ra"
