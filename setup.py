from setuptools import find_packages, setup

setup(
    name="asgfetch",
    version="0.3.0",
    description="fetch files from EC2 instances and Auto Scaling Groups "
                "over SSH for infrastructure tests",
    author="Million Concepts",
    author_email="mstclair@millionconcepts.com",
    packages=find_packages(),
    python_requires=">=3.11",
    classifiers=[
        "Development Status :: 4 - Beta",
        "Environment :: Console",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: BSD License",
        "Operating System :: MacOS :: MacOS X",
        "Operating System :: POSIX :: Linux",
        "Programming Language :: Python :: 3",
        "Topic :: Software Development :: Testing",
    ],
    install_requires=[
        "boto3",
        "cytoolz",
        "dustgoggles",
        "fire",
        "fabric>=3.1",
        "paramiko>=3.2",
        "python-magic",
        "pyyaml",
        "rich",
    ],
    extras_require={"tests": ["pytest"]},
    entry_points={"console_scripts": ["asgfetch = asgfetch.cli:main"]},
)
