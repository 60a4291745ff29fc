# Generate example diagrams
import os

import matplotlib
matplotlib.use('Agg')

from spacetime_dsl import run_example

os.makedirs('images', exist_ok=True)

# Inertial observer
run_example('moving_observer', save_to='images/moving_observer.png')

# Simultaneity line meeting a rocket
run_example('accelerating_intersection', save_to='images/accelerating_intersection.png')

# Twin paradox
run_example('twin_paradox', save_to='images/twin_paradox.png')

# Boost animation, first and last frames
run_example('boost_animation', frame_number=1, save_to='images/boost_start.png')
run_example('boost_animation', frame_number=90, save_to='images/boost_end.png')

# Light clock seen from the clock's own frame
run_example('light_clock', bindings={'speed': 0.8, 'view': 1}, save_to='images/light_clock.png')
