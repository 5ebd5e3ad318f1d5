import setuptools

with open("README.md", "r", encoding = "utf-8") as fh:
	long_description = fh.read()

setuptools.setup(
	name = "openfsa",
	version = "v0.1.0",
	author = "Mans Hulden",
	author_email = "mans.hulden@colorado.edu",
	description = "Weighted finite-state acceptors over the tropical semiring",
	long_description = long_description,
	long_description_content_type = "text/markdown",
	classifiers = [
		"Programming Language :: Python :: 3",
		"License :: OSI Approved :: Apache Software License",
		"Operating System :: OS Independent",
	],
	package_dir = {"": "src"},
	packages = setuptools.find_packages(where="src"),
	python_requires = ">=3.8",
	install_requires = [
		"graphviz", "tqdm", "typing_extensions"
	]
)
