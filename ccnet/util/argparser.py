# ----------------------------------------------------------------------------
# Copyright 2014 Nervana Systems Inc.
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#      http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
# ----------------------------------------------------------------------------
"""
Command line argument parser for ccnet tools

This is a wrapper around the configargparse ArgumentParser class.
It adds in the default ccnet command line arguments and allows
additional arguments to be added using the argparse library
methods.  Lower priority defaults can also be read from a configuration file
(specified by the -c command line argument).
"""
import configargparse
import logging
from logging.handlers import RotatingFileHandler
import numpy as np
import os

from ccnet import __version__ as ccnet_version
from ccnet.backends import gen_backend
from ccnet.backends.backend import Backend

logger = logging.getLogger(__name__)


class CCNetArgparser(configargparse.ArgumentParser):
    """
    Setup the command line arg parser and parse the
    arguments in sys.arg (or from configuration file).  Use the parsed
    options to configure the logging module.

    Arguments:
        desc (String) : Docstring from the calling function. This will be used
                        for the description of the command receiving the
                        arguments.
    """
    def __init__(self, *args, **kwargs):
        self._PARSED = False
        self.work_dir = os.path.join(os.path.expanduser('~'), 'ccnet')
        if 'default_config_files' not in kwargs:
            kwargs['default_config_files'] = [os.path.join(self.work_dir,
                                                           'ccnet.cfg')]
        if 'add_config_file_help' not in kwargs:
            kwargs['add_config_file_help'] = False

        self.defaults = kwargs.pop('default_overrides', dict())
        super(CCNetArgparser, self).__init__(*args, **kwargs)

        # ensure that default values are display via --help
        self.formatter_class = configargparse.ArgumentDefaultsHelpFormatter

        self.setup_default_args()

    def setup_default_args(self):
        """
        Setup the default arguments used by ccnet
        """
        self.add_argument('--version', action='version',
                          version=ccnet_version)
        self.add_argument('-c', '--config',
                          is_config_file=True,
                          help='Read values for these arguments from the '
                               'configuration file specified here first.')
        self.add_argument('-v', '--verbose', action='count',
                          default=self.defaults.get('verbose', 1),
                          help="verbosity level.  Add multiple v's to "
                               "further increase verbosity")
        self.add_argument('-l', '--log', dest='logfile', nargs='?',
                          const=os.path.join(self.work_dir, 'ccnet_log.txt'),
                          help='log file')

        be_grp = self.add_argument_group('backend')
        be_grp.add_argument('-b', '--backend',
                            choices=Backend.backend_choices(),
                            default='cpu', help='backend type')
        be_grp.add_argument('-r', '--rng_seed', type=int,
                            default=self.defaults.get('rng_seed', None),
                            metavar='SEED',
                            help='random number generator seed')
        be_grp.add_argument('-d', '--datatype', choices=['f32', 'f64'],
                            default=self.defaults.get('datatype', 'f32'),
                            metavar='default datatype',
                            help='default floating point precision for '
                                 'backend')

        dev_grp = self.add_argument_group('device')
        dev_grp.add_argument('--max_threads_per_block', type=int,
                             default=self.defaults.get(
                                 'max_threads_per_block', 1024),
                             help='largest thread block the device accepts')
        dev_grp.add_argument('--max_shared_bytes', type=int,
                             default=self.defaults.get('max_shared_bytes',
                                                       48 * 1024),
                             help='scratch memory available to each block')
        return

    def add_argument(self, *args, **kwargs):
        """
        Method by which command line arguments are added to the parser.  Passed
        straight through to parent add_argument method.
        """
        if self._PARSED:
            logger.warning('Adding arguments after arguments were parsed = '
                           'may need to rerun parse_args')
            # reset so warning only comes once
            self._PARSED = False

        super(CCNetArgparser, self).add_argument(*args, **kwargs)
        return

    def parse_args(self, args=None, gen_be=True):
        """
        Parse the command line arguments and setup the ccnet
        runtime environment accordingly

        Arguments:
            args (list, optional): arguments to parse instead of sys.argv.
            gen_be (bool): if False, the arg parser will not
                           generate the backend

        Returns:
            namespace: contains the parsed arguments as attributes, the
                       generated backend (if any) as ``be``
        """
        args = super(CCNetArgparser, self).parse_args(args)

        # max thresh is 50 (critical only), min is 10 (debug or higher)
        try:
            log_thresh = max(10, 40 - args.verbose * 10)
        except (AttributeError, TypeError):
            # if defaults are not set or not -v given
            # for latter will get type error
            log_thresh = 30
        args.log_thresh = log_thresh

        fmtr = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - '
                                 '%(message)s')

        # get the parent logger for ccnet
        main_logger = logging.getLogger('ccnet')
        main_logger.setLevel(log_thresh)

        stderrlog = logging.StreamHandler()
        stderrlog.setFormatter(fmtr)
        stderrlog.setLevel(log_thresh)

        if args.logfile:
            args.logfile = os.path.expanduser(args.logfile)
            filelog = RotatingFileHandler(filename=args.logfile, mode='w',
                                          maxBytes=10000000, backupCount=5)
            filelog.setFormatter(fmtr)
            filelog.setLevel(log_thresh)
            main_logger.addHandler(filelog)

        main_logger.propagate = False
        main_logger.addHandler(stderrlog)

        args.datatype = np.dtype('float' + args.datatype[1:]).type

        args.be = None
        if gen_be:
            args.be = gen_backend(
                backend=args.backend, rng_seed=args.rng_seed,
                datatype=args.datatype,
                max_threads_per_block=args.max_threads_per_block,
                max_shared_bytes=args.max_shared_bytes)

        # display what command line / config options were set (and from where)
        logger.info(self.format_values())

        self._PARSED = True
        self.args = args
        return args
