[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "scraperss"
version = "0.1.0"
description = "RSS feed aggregator: a JSON HTTP API for users and feeds, with a background scraper that stores feed items as posts in SQLite."
requires-python = ">=3.10"
keywords = ["rss", "feeds", "aggregator", "scraper", "rest", "api", "flask", "sqlite"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Environment :: Web Environment",
    "Framework :: Flask",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Internet :: WWW/HTTP :: Dynamic Content :: News/Diary",
]
dependencies = [
    "flask",
    "defusedxml",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[project.scripts]
scraperss = "scraperss.app:main"

[tool.hatch.build.targets.wheel]
packages = ["scraperss"]

[tool.hatch.build.targets.sdist]
include = ["scraperss", "tests", "pyproject.toml"]

[tool.pytest.ini_options]
addopts = "-ra"
testpaths = ["tests"]

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "W", "I", "B", "UP"]

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
warn_redundant_casts = true
