import os
from setuptools import setup, find_namespace_packages
from setuptools.command.build_py import build_py as _build

CLASSIFIERS = [
    'Operating System :: POSIX',
    'Operating System :: MacOS :: MacOS X',
    'Intended Audience :: Developers',
    'Programming Language :: Python',
    'Programming Language :: Python :: 3',
    'Topic :: Internet :: WWW/HTTP :: WSGI :: Application'
]

def get_version():
    out = "dev"
    versfile = os.path.join(os.path.dirname(os.path.abspath(__file__)), 'VERSION')
    if os.path.exists(versfile):
        with open(versfile) as fd:
            parts = fd.readline().split()
        if len(parts) > 0:
            out = parts[-1]
    return out

def write_version_mod(version):
    pkgdir = os.path.join('python', 'dataplat')
    for pkg in [f for f in os.listdir(pkgdir) \
                  if not f.startswith('_') and not f.startswith('.')
                     and os.path.isdir(os.path.join(pkgdir, f))]:
        versmodf = os.path.join(pkgdir, pkg, "version.py")
        with open(versmodf, 'w') as fd:
            fd.write('"""')
            fd.write("""
An identification of the subsystem version.  Note that this module file gets
(over-) written by the build process.
""")
            fd.write('"""\n\n')
            fd.write('__version__ = "')
            fd.write(version)
            fd.write('"\n')

class build(_build):

    def run(self):
        write_version_mod(get_version())
        _build.run(self)

setup(name='dataplat.sysapi',
      version=get_version() if get_version() != "dev" else "0.0.dev0",
      description="dataplat.sysapi: the system API and application package engine of the data platform",
      scripts=[ 'scripts/sysadm' ],
      package_dir={'': 'python'},
      packages=find_namespace_packages(where='python', include=['dataplat.*']),
      install_requires=[ 'requests', 'pyyaml', 'pymongo', 'werkzeug' ],
      extras_require={ 'test': [ 'pytest' ] },
      cmdclass={'build_py': build},
      classifiers=CLASSIFIERS,
      zip_safe=False
)
