[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "nodecollect"
version = "0.1.0"
description = "Collectors that read Linux kernel and hardware statistics from /proc and /sys and return them as typed metrics"
requires-python = ">=3.10"
dependencies = []
keywords = ["metrics", "monitoring", "procfs", "sysfs", "linux", "hwmon", "ethtool"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: System Administrators",
    "Intended Audience :: Developers",
    "Operating System :: POSIX :: Linux",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Monitoring",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["nodecollect"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"
