from setuptools import find_packages, setup

setup( name='LLCDecodeServices',
       version='0.1',
       description='Multi-file, multi-resolution query and decode orchestration for LLC ocean-simulation volumes',
       packages=find_packages(include=('LLCDecodeServices', 'LLCDecodeServices.*')),
       python_requires='>=3.6',
       install_requires=[
           'numpy',
           'psutil',
           'jsonschema>=3.0',
           'ruamel.yaml',
       ],
       extras_require={
           'test': ['pytest'],
       },
       entry_points={
          'console_scripts': [
              'launchquery = LLCDecodeServices.launchquery:main',
          ]
       }
     )
