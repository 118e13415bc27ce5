"""Example MapReduce applications, each providing map_ and reduce_."""